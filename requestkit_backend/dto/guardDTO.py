from pydantic import BaseModel, Field

from requestkit_backend.requestkitUtils.errors import GuardStep


# Outcome of a teardown step of the DB guard.
# Failures in these steps are swallowed, so the result is the only trace besides the log.


class TeardownResultDTO(BaseModel):
    step: GuardStep = Field(..., description="Teardown step that ran (rollback or close).")
    performed: bool = Field(False, description="True when the connection call was actually made.")
    error: str | None = Field(None, description="Message of the swallowed failure, if any.")

    @property
    def failed(self) -> bool:
        return self.error is not None
