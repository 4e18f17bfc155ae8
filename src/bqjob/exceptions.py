from typing import Any, Dict, List, Optional


class BQError(Exception):
    ...


class InvalidConfiguration(BQError, ValueError):
    """クエリジョブの設定値が不正"""


class SubmissionError(BQError):
    """ジョブの投入がBigQuery側で拒否された"""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        reason: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.reason = reason
        self.errors = errors or []

    @classmethod
    def from_response_json(cls, json: Dict[str, Any], status_code: Optional[int] = None):
        error = json.get("error") or {}
        errors = error.get("errors") or []
        reason = errors[0].get("reason") if errors else error.get("status")
        return cls(
            message=error.get("message", "job submission failed"),
            code=error.get("code", status_code),
            reason=reason,
            errors=errors,
        )

    def __str__(self):
        if self.code is None:
            return self.message
        return f"{self.code} {self.message}"
