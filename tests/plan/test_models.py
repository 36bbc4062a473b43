import unittest

from atomc.diff.diff_engine import DiffMode
from atomc.plan.models import (
    ApplyResult,
    ApplyStatus,
    CommitApplyResponse,
    CommitPlan,
    CommitType,
    CommitUnit,
    ErrorDetail,
    ErrorResponse,
    InputMeta,
    InputSource,
    PlanWarning,
)
from atomc.plan.schema import SchemaKind, validate_schema

SUMMARY = "add installation notes to the readme for new contributors"


class TestCommitUnit(unittest.TestCase):
    def test_subject_with_scope(self) -> None:
        unit = CommitUnit(id="1", type=CommitType.FEAT, scope="cli", summary="s", body=["b"], files=["f"])
        self.assertEqual(unit.subject(), "feat[cli]: s")

    def test_subject_without_scope(self) -> None:
        unit = CommitUnit(id="1", type=CommitType.FIX, summary="s", body=["b"], files=["f"])
        self.assertEqual(unit.subject(), "fix: s")

    def test_from_dict_parses_hunks_and_enums(self) -> None:
        unit = CommitUnit.from_dict(
            {
                "id": "c1",
                "type": "refactor",
                "summary": SUMMARY,
                "body": ["b"],
                "files": ["a.py"],
                "hunks": [{"file": "a.py", "header": "@@ -1 +1 @@"}],
            }
        )
        self.assertIs(unit.type, CommitType.REFACTOR)
        self.assertIsNone(unit.scope)
        self.assertEqual(unit.hunks[0].header, "@@ -1 +1 @@")
        self.assertNotIn("id", unit.hunks[0].to_dict())


class TestPlanPayloads(unittest.TestCase):
    def _plan(self) -> CommitPlan:
        unit = CommitUnit(
            id="c1",
            type=CommitType.DOCS,
            scope="readme",
            summary=SUMMARY,
            body=["Explain local installation."],
            files=["README.md"],
        )
        return CommitPlan(
            plan=[unit],
            request_id="req",
            warnings=[PlanWarning(code="scope_missing", message="m")],
            input=InputMeta(
                source=InputSource.REPO,
                diff_mode=DiffMode.ALL,
                include_untracked=True,
                diff_hash="sha256:00ff",
            ),
        )

    def test_plan_serialises_to_schema_valid_payload(self) -> None:
        payload = self._plan().to_dict()
        self.assertTrue(validate_schema(SchemaKind.COMMIT_PLAN, payload).ok)
        self.assertEqual(CommitPlan.from_dict(payload), self._plan())

    def test_optional_fields_are_omitted(self) -> None:
        payload = CommitPlan(plan=[]).to_dict()
        self.assertEqual(payload, {"schema_version": "v1", "plan": []})

    def test_apply_response_payload(self) -> None:
        plan = self._plan()
        results = [
            ApplyResult(
                id="c1",
                status=ApplyStatus.FAILED,
                error=ErrorDetail(code="plan_file_missing", message="missing", details={"file": "x"}),
            )
        ]
        payload = CommitApplyResponse.from_plan(plan, results).to_dict()
        self.assertTrue(validate_schema(SchemaKind.COMMIT_APPLY, payload).ok)
        self.assertEqual(payload["request_id"], "req")
        self.assertEqual(payload["results"][0]["error"]["code"], "plan_file_missing")
        self.assertEqual(ApplyResult.from_dict(payload["results"][0]), results[0])

    def test_error_response_payload(self) -> None:
        response = ErrorResponse(error=ErrorDetail(code="git_error", message="boom"), request_id="r")
        payload = response.to_dict()
        self.assertTrue(validate_schema(SchemaKind.ERROR_RESPONSE, payload).ok)
        self.assertEqual(list(payload), ["schema_version", "request_id", "error"])


if __name__ == "__main__":
    unittest.main()
