from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class StoreError(AppError):
    status_code = 500
