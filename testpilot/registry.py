"""Catalogue of logical tests the dashboard can run."""

import logging
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from testpilot.models.registry import RegistryFile, TestSpec, TestVariable

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestRegistry:
    """Immutable mapping of test id to its descriptor."""

    __test__ = False

    specs: Mapping[int, TestSpec]

    @classmethod
    def from_specs(cls, specs: Iterable[TestSpec]) -> "TestRegistry":
        """Index descriptors by id, rejecting duplicates."""
        indexed: dict[int, TestSpec] = {}
        for spec in specs:
            if spec.id in indexed:
                raise ValueError(f"Duplicate test id {spec.id}")
            indexed[spec.id] = spec
        return cls(specs=dict(sorted(indexed.items())))

    def __iter__(self) -> Iterator[TestSpec]:
        return iter(self.specs.values())

    def __len__(self) -> int:
        return len(self.specs)

    def get(self, test_id: int) -> TestSpec | None:
        """Return the descriptor for ``test_id`` if registered."""
        return self.specs.get(test_id)

    def label_for(self, test_id: int) -> str:
        """Return the label for ``test_id``, or a placeholder when unknown."""
        spec = self.specs.get(test_id)
        return spec.label if spec else f"Test #{test_id}"

    def partition(
        self, test_ids: Sequence[int]
    ) -> tuple[Sequence[TestSpec], Sequence[int]]:
        """Split ids into known descriptors and unknown ids, keeping order."""
        known: list[TestSpec] = []
        unknown: list[int] = []
        for test_id in test_ids:
            if (spec := self.specs.get(test_id)) is not None:
                known.append(spec)
            else:
                unknown.append(test_id)
        return known, unknown


def default_registry(environ: Mapping[str, str] | None = None) -> TestRegistry:
    """Build the built-in registry, taking variable defaults from ``environ``.

    Filters are space-free regular expressions ("." matches the spaces in the
    test titles) so they survive being passed as a single argument.
    """
    env = os.environ if environ is None else environ
    return TestRegistry.from_specs(
        [
            TestSpec(
                id=1,
                label="Search by book title",
                spec_file="tests/search.spec.ts",
                grep="searching.by.title",
                variables=[
                    TestVariable(
                        key="SEARCH_QUERY",
                        label="Search Query",
                        input_kind="text",
                        default_value="El Quijote",
                        description="Book title or keyword to search for",
                    ),
                ],
            ),
            TestSpec(
                id=2,
                label="Invalid credentials error",
                spec_file="tests/login.spec.ts",
                grep="invalid.credentials",
                variables=[
                    TestVariable(
                        key="INVALID_USER_EMAIL",
                        label="Email",
                        input_kind="email",
                        default_value=env.get(
                            "INVALID_USER_EMAIL", "sample@sample.com"
                        ),
                        description="Email address expected to fail login",
                    ),
                    TestVariable(
                        key="INVALID_USER_PASSWORD",
                        label="Password",
                        input_kind="password",
                        default_value=env.get("INVALID_USER_PASSWORD", "12345678"),
                        description="Password expected to fail login",
                    ),
                ],
            ),
            TestSpec(
                id=3,
                label="Login with valid credentials",
                spec_file="tests/login.spec.ts",
                grep="access.account.page",
                variables=[
                    TestVariable(
                        key="VALID_USER_EMAIL",
                        label="Email",
                        input_kind="email",
                        default_value=env.get("VALID_USER_EMAIL", ""),
                        description="Valid account email address",
                    ),
                    TestVariable(
                        key="VALID_USER_PASSWORD",
                        label="Password",
                        input_kind="password",
                        default_value=env.get("VALID_USER_PASSWORD", ""),
                        description="Valid account password",
                    ),
                ],
            ),
        ]
    )


def load_registry(path: Path) -> TestRegistry:
    """Load a test registry from a YAML file.

    Args:
        path: Path to the registry file

    Returns:
        Registry indexed by test id

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is empty, is not valid YAML or fails validation

    """
    if not path.is_file():
        raise FileNotFoundError(f"Registry file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty registry file: {path}")

    try:
        registry_file = RegistryFile.model_validate(data)
        registry = TestRegistry.from_specs(registry_file.tests)
    except (ValidationError, ValueError) as e:
        raise ValueError(f"Invalid registry schema in {path}: {e}") from e

    log.info("Loaded %d test(s) from %s", len(registry), path)
    return registry
