from uuid import UUID

from chatdesk.domain.enums import ConversationStatus, Platform


class ConversationNotFoundError(LookupError):
    def __init__(self, conversation_id: UUID) -> None:
        super().__init__(f"Conversation '{conversation_id}' not found")
        self.conversation_id = conversation_id


class ConversationClosedError(ValueError):
    def __init__(self, conversation_id: UUID) -> None:
        super().__init__(f"Conversation '{conversation_id}' is closed and read-only")
        self.conversation_id = conversation_id


class ConversationStatusError(ValueError):
    def __init__(
        self,
        conversation_id: UUID,
        current: ConversationStatus,
        target: ConversationStatus,
    ) -> None:
        super().__init__(
            f"Conversation '{conversation_id}' cannot move from "
            f"'{current.value}' to '{target.value}'"
        )
        self.conversation_id = conversation_id
        self.current = current
        self.target = target


class EmptyMessageError(ValueError):
    def __init__(self) -> None:
        super().__init__("Message content cannot be empty.")


class UserNotFoundError(LookupError):
    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"User '{user_id}' not found")
        self.user_id = user_id


class InactiveUserError(ValueError):
    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"User '{user_id}' is inactive and cannot be assigned")
        self.user_id = user_id


class AuthenticationError(PermissionError):
    def __init__(self, detail: str = "Invalid email or password") -> None:
        super().__init__(detail)


class EmailAlreadyRegisteredError(ValueError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Email '{email}' is already registered")
        self.email = email


class InstructionNotFoundError(LookupError):
    def __init__(self, instruction_id: UUID) -> None:
        super().__init__(f"Instruction '{instruction_id}' not found")
        self.instruction_id = instruction_id


class InstructionValidationError(ValueError):
    pass


class PlatformCredentialNotFoundError(LookupError):
    def __init__(self, credential_id: UUID) -> None:
        super().__init__(f"Platform credential '{credential_id}' not found")
        self.credential_id = credential_id


class InvalidCredentialsConfigError(ValueError):
    def __init__(self, platform: Platform, missing: list[str]) -> None:
        super().__init__(
            f"{platform.value} credentials are missing: {', '.join(missing)}"
        )
        self.platform = platform
        self.missing = missing


class UnsupportedPlatformError(ValueError):
    def __init__(self, platform: str) -> None:
        super().__init__(f"Platform '{platform}' does not accept stored credentials")
        self.platform = platform


class WebhookVerificationError(PermissionError):
    def __init__(self, platform: Platform, detail: str = "Invalid signature") -> None:
        super().__init__(f"{platform.value} webhook rejected: {detail}")
        self.platform = platform


class MissingSignatureError(ValueError):
    def __init__(self, header: str) -> None:
        super().__init__(f"Missing '{header}' header")
        self.header = header
