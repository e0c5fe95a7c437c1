"""Sorted-set value types."""

from pydantic import ConfigDict, Field

from .base import FacadeBaseModel


class ScoredMember(FacadeBaseModel):
    """A sorted-set member paired with its score.

    Ties between equal scores are ordered by the store (lexical member order).
    """

    model_config = ConfigDict(frozen=True)

    member: str = Field(min_length=1)
    score: float = Field(allow_inf_nan=False)
