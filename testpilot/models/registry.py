"""Models for the logical test registry."""

from collections.abc import Sequence
from typing import Literal

from pydantic import ConfigDict, Field

from testpilot.models.base import Model


class TestVariable(Model):
    """Run-time parameter a test reads from its process environment."""

    __test__ = False

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    label: str = Field(..., description="Human-readable field label")
    input_kind: Literal["text", "email", "password", "number", "url"] = Field(
        default="text", alias="type", description="Input widget hint for the UI"
    )
    default_value: str = Field(default="", alias="default")
    description: str = ""


class TestSpec(Model):
    """A pre-registered logical test scenario."""

    __test__ = False

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., gt=0)
    label: str = Field(..., description="Human-readable test name")
    spec_file: str = Field(default="", alias="specFile")
    grep: str = Field(
        ...,
        min_length=1,
        description="Runner filter expression; also attributes output lines",
    )
    variables: Sequence[TestVariable] = Field(default_factory=list)

    def to_wire(self) -> dict[str, object]:
        """Serialize with the keys the dashboard UI expects."""
        return self.model_dump(mode="json", by_alias=True)


class RegistryFile(Model):
    """Top-level layout of a YAML registry file."""

    tests: Sequence[TestSpec] = Field(default_factory=list)
