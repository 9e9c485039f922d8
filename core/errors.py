import enum


class ErrorCategory(str, enum.Enum):
    input_validation = "input_validation"
    conflict = "conflict"
    lifecycle = "lifecycle"
    transient = "transient"
    dependency_missing = "dependency_missing"


class ErrorAction(str, enum.Enum):
    fix_input = "fix_input"
    retry_same_code = "retry_same_code"
    request_new_code = "request_new_code"
    use_different_contact = "use_different_contact"
    complete_handshake = "complete_handshake"
    retry_later = "retry_later"


class VerificationError(Exception):
    """Business error returned to the client inside the ``success`` envelope."""

    kind = "verification_error"
    category = ErrorCategory.transient
    action = ErrorAction.retry_later
    message = "Xatolik yuz berdi. Qaytadan urinib ko'ring."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "category": self.category.value,
            "action": self.action.value,
            "message": self.message,
        }


class InputValidationError(VerificationError):
    category = ErrorCategory.input_validation
    action = ErrorAction.fix_input


class InvalidEmail(InputValidationError):
    kind = "invalid_email"
    message = "Email formati noto'g'ri"


class InvalidPhone(InputValidationError):
    kind = "invalid_phone"
    message = "Telefon raqam noto'g'ri"


class InvalidCode(InputValidationError):
    kind = "invalid_code"
    message = "OTP kod 6 raqamdan iborat bo'lishi kerak"


class InvalidPassword(InputValidationError):
    kind = "invalid_password"
    message = "Parol kamida 6 ta belgidan iborat bo'lishi kerak"


class ConflictError(VerificationError):
    category = ErrorCategory.conflict
    action = ErrorAction.use_different_contact


class EmailAlreadyRegistered(ConflictError):
    kind = "email_already_registered"
    message = "Bu email allaqachon ro'yxatdan o'tgan"


class PhoneAlreadyRegistered(ConflictError):
    kind = "phone_already_registered"
    message = "Bu telefon raqam allaqachon ro'yxatdan o'tgan"


class IdentityAlreadyRegistered(ConflictError):
    kind = "identity_already_registered"
    message = "Bu Telegram akkaunt allaqachon ro'yxatdan o'tgan. Bitta Telegram = bitta akkaunt."


class EmailTaken(ConflictError):
    kind = "email_taken"
    message = "Bu email allaqachon boshqa akkauntga tegishli"


class AccountNotFound(ConflictError):
    kind = "account_not_found"
    message = "Bu ma'lumotlar bilan ro'yxatdan o'tgan akkaunt topilmadi"


class LifecycleError(VerificationError):
    category = ErrorCategory.lifecycle
    action = ErrorAction.request_new_code


class SessionNotFound(LifecycleError):
    kind = "session_not_found"
    message = "Session topilmadi"


class Expired(LifecycleError):
    kind = "expired"
    message = "OTP muddati tugagan. Yangi kod so'rang."


class AlreadyUsed(LifecycleError):
    kind = "already_used"
    message = "Bu kod allaqachon ishlatilgan"


class TooManyAttempts(LifecycleError):
    kind = "too_many_attempts"
    message = "Juda ko'p urinish. Yangi kod so'rang."


class CodeMismatch(LifecycleError):
    kind = "code_mismatch"
    action = ErrorAction.retry_same_code
    message = "Noto'g'ri kod. Qaytadan kiriting."


class TransientError(VerificationError):
    category = ErrorCategory.transient
    action = ErrorAction.retry_later


class DispatchFailed(TransientError):
    kind = "dispatch_failed"
    message = "Kodni yuborishda xatolik yuz berdi. Qaytadan urinib ko'ring."


class RateLimited(TransientError):
    kind = "rate_limited"
    message = "Juda tez-tez so'rov. 1 daqiqa kuting."


class DirectoryUnavailable(TransientError):
    kind = "directory_unavailable"
    message = "Akkaunt xizmati vaqtincha ishlamayapti. Keyinroq urinib ko'ring."


class MessagingIdentityNotFound(VerificationError):
    kind = "messaging_identity_not_found"
    category = ErrorCategory.dependency_missing
    action = ErrorAction.complete_handshake
    message = (
        "Telegram akkaunt topilmadi. Avval botga /start yuboring va "
        "📱 tugmasini bosib telefon raqamingizni ulashing."
    )
