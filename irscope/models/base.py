"""Base model for taste documents and contexts.

Fields are snake_case in Python and camelCase in stored JSON
(``nVotes``, ``irWins``, ``bothCount``, ``speakerPrefix``).  Either spelling
is accepted on input; :func:`irscope.models.taste.dump_state` writes the
camelCase form.  Unknown keys in a stored document are dropped on load.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
