# errors.py
class PromoError(Exception):
    """Base class for every error the redemption core reports to callers."""

    detail = "promo_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.detail)

    def body(self) -> dict:
        return {"detail": self.detail}


class InvalidInputError(PromoError):
    """Missing code/player, bad chest slot or non-positive issuance counts."""

    detail = "invalid_input"
    status_code = 400


class CodeError(PromoError):
    """Error about one specific code."""

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        super().__init__(message or f"{self.detail}: {code}")


class CodeNotFoundError(CodeError):
    detail = "invalid_code"
    status_code = 404


class CodeExpiredError(CodeError):
    detail = "expired"
    status_code = 400


class CodeExhaustedError(CodeError):
    detail = "exhausted"
    status_code = 409


class CodeConflictError(CodeExhaustedError):
    """Lost the race for the last use to a concurrent play.

    Callers see it exactly like an exhausted code.
    """


class CodeRevokedError(CodeError):
    detail = "revoked"
    status_code = 410


class CodeGenerationError(PromoError):
    """Could not find a free token within the retry budget."""

    detail = "code_generation_failed"
    status_code = 500

    def __init__(self, message: str | None = None, created: list[str] | None = None):
        super().__init__(message)
        # Codes committed before the budget ran out
        self.created = created or []

    def body(self) -> dict:
        return {"detail": self.detail, "codes": self.created}
