"""Test case and suite definitions."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from suite_harness.models.outcome import DEFAULT_CATEGORY

if TYPE_CHECKING:
    from suite_harness.orchestrator import CaseScope

type CaseBody = Callable[["CaseScope[Any]"], Awaitable[None]]


@dataclass(frozen=True, kw_only=True)
class TestCase:
    """A named test body and the category it is reported under."""

    __test__ = False

    name: str
    body: CaseBody = field(repr=False)
    category: str = DEFAULT_CATEGORY
    description: str = ""


@dataclass(kw_only=True)
class Suite:
    """Ordered collection of test cases sharing one session kind.

    Example:
        suite = Suite(name="Books API", kind="api")

        @suite.case("Get all books", category="Smoke")
        async def get_all_books(scope: CaseScope[ApiClient]) -> None:
            response = await scope.handle.get("/Books")
            assert response.status == 200

    """

    name: str
    kind: str
    cases: list[TestCase] = field(default_factory=list)

    def add(self, case: TestCase) -> TestCase:
        """Append a case, rejecting duplicate names."""
        if any(existing.name == case.name for existing in self.cases):
            raise ValueError(f"Duplicate test case name in {self.name}: {case.name}")
        self.cases.append(case)
        return case

    def case(
        self,
        name: str,
        *,
        category: str = DEFAULT_CATEGORY,
        description: str = "",
    ) -> Callable[[CaseBody], CaseBody]:
        """Register the decorated coroutine function as a test case."""

        def register(body: CaseBody) -> CaseBody:
            self.add(
                TestCase(
                    name=name, body=body, category=category, description=description
                )
            )
            return body

        return register
