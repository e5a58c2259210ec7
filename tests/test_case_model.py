"""
Unit tests for the Case model invariants and derived views.
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from caselink_core.config import REQUIRED_DOCUMENT_KINDS, DocumentKind
from caselink_core.models.case import (
    CaseStatus,
    CompletedPhase,
    EscalationLevel,
    ExpiredPhase,
    OpenPhase,
    RejectedPhase,
    ReviewStatus,
    SubmittedPhase,
    calculate_completion_percent,
)

from conftest import START, make_artifact, make_case


class TestCompletionPercent:
    """Integer round-half-up percentage of filled slots."""

    @pytest.mark.parametrize("filled,expected", [(0, 0), (1, 25), (2, 50), (3, 75), (4, 100)])
    def test_four_slots(self, filled, expected):
        assert calculate_completion_percent(filled, 4) == expected

    def test_rounds_half_up(self):
        # 1/8 = 12.5%, 1/3 = 33.3%, 2/3 = 66.7%
        assert calculate_completion_percent(1, 8) == 13
        assert calculate_completion_percent(1, 3) == 33
        assert calculate_completion_percent(2, 3) == 67

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            calculate_completion_percent(5, 4)
        with pytest.raises(ValueError):
            calculate_completion_percent(1, 0)


class TestCaseInvariants:
    """Illegal field combinations cannot be constructed."""

    def test_new_case_defaults(self):
        case = make_case()
        assert case.status == CaseStatus.OPEN
        assert case.review_status == ReviewStatus.PENDING
        assert case.escalation_level == EscalationLevel.NONE
        assert case.completion_percent == 0
        assert case.rejected_slots == []
        assert case.expired_at is None

    def test_completion_must_match_documents(self):
        with pytest.raises(ValidationError):
            make_case(kinds=[DocumentKind.ID], completion_percent=50)

    def test_submitted_requires_all_documents(self):
        with pytest.raises(ValidationError):
            make_case(kinds=[DocumentKind.ID], status=CaseStatus.SUBMITTED)

    def test_expired_requires_expired_at(self):
        with pytest.raises(ValidationError):
            make_case(status=CaseStatus.EXPIRED)

    def test_expired_at_only_when_expired(self):
        with pytest.raises(ValidationError):
            make_case(expired_at=START + timedelta(hours=200))

    def test_rejected_requires_slots_and_comment(self):
        with pytest.raises(ValidationError):
            make_case(review_status=ReviewStatus.REJECTED, review_comment="blurry")
        with pytest.raises(ValidationError):
            make_case(review_status=ReviewStatus.REJECTED, rejected_slots=[DocumentKind.ID])

    def test_rejected_slots_forbidden_unless_rejected(self):
        with pytest.raises(ValidationError):
            make_case(rejected_slots=[DocumentKind.ID])

    def test_completed_iff_approved(self):
        with pytest.raises(ValidationError):
            make_case(kinds=REQUIRED_DOCUMENT_KINDS, status=CaseStatus.COMPLETED)
        with pytest.raises(ValidationError):
            make_case(kinds=REQUIRED_DOCUMENT_KINDS, review_status=ReviewStatus.APPROVED)

    def test_created_after_updated_rejected(self):
        with pytest.raises(ValidationError):
            make_case(updated_at=START - timedelta(seconds=1))

    def test_rejected_slots_deduplicated_in_canonical_order(self):
        case = make_case(
            review_status=ReviewStatus.REJECTED,
            review_comment="redo",
            rejected_slots=[DocumentKind.BANK_STATEMENT, DocumentKind.ID, DocumentKind.BANK_STATEMENT],
        )
        assert case.rejected_slots == [DocumentKind.ID, DocumentKind.BANK_STATEMENT]

    def test_json_round_trip_preserves_case(self):
        case = make_case(kinds=[DocumentKind.ID, DocumentKind.LICENCE], notes="call after 5pm")
        restored = type(case).model_validate_json(case.model_dump_json())
        assert restored.model_dump() == case.model_dump()


class TestDerivedViews:
    """document_status, missing_documents, phase and pending re-uploads."""

    def test_document_status_lists_every_required_kind(self):
        case = make_case(kinds=[DocumentKind.LICENCE])
        assert case.document_status == {
            DocumentKind.ID: False,
            DocumentKind.LICENCE: True,
            DocumentKind.PROOF_OF_ADDRESS: False,
            DocumentKind.BANK_STATEMENT: False,
        }
        assert case.missing_documents == [
            DocumentKind.ID, DocumentKind.PROOF_OF_ADDRESS, DocumentKind.BANK_STATEMENT,
        ]

    def test_phase_open_and_submitted(self):
        assert isinstance(make_case().phase, OpenPhase)
        submitted = make_case(kinds=REQUIRED_DOCUMENT_KINDS, status=CaseStatus.SUBMITTED)
        assert isinstance(submitted.phase, SubmittedPhase)
        assert submitted.phase.review_pending is True

    def test_phase_rejected_carries_slots_and_comment(self):
        case = make_case(
            kinds=REQUIRED_DOCUMENT_KINDS,
            status=CaseStatus.IN_PROGRESS,
            review_status=ReviewStatus.REJECTED,
            review_comment="ID is blurry",
            rejected_slots=[DocumentKind.ID],
            reviewed_at=START,
        )
        phase = case.phase
        assert isinstance(phase, RejectedPhase)
        assert phase.slots == [DocumentKind.ID]
        assert phase.comment == "ID is blurry"
        assert phase.status == CaseStatus.IN_PROGRESS

    def test_phase_terminal_states(self):
        completed = make_case(
            kinds=REQUIRED_DOCUMENT_KINDS,
            status=CaseStatus.COMPLETED,
            review_status=ReviewStatus.APPROVED,
            reviewed_by="agent-1",
        )
        assert isinstance(completed.phase, CompletedPhase)
        assert completed.is_read_only_for_submitter

        expired = make_case(status=CaseStatus.EXPIRED, expired_at=START + timedelta(hours=144))
        assert isinstance(expired.phase, ExpiredPhase)
        assert expired.is_terminal

    def test_reupload_must_be_strictly_after_rejection(self):
        rejected_at = START + timedelta(hours=2)
        case = make_case(
            kinds=REQUIRED_DOCUMENT_KINDS,
            status=CaseStatus.IN_PROGRESS,
            review_status=ReviewStatus.REJECTED,
            review_comment="redo",
            rejected_slots=[DocumentKind.ID, DocumentKind.LICENCE],
            reviewed_at=rejected_at,
            updated_at=rejected_at,
        )
        assert case.slots_pending_resubmission() == [DocumentKind.ID, DocumentKind.LICENCE]

        documents = dict(case.documents)
        documents[DocumentKind.ID] = make_artifact(DocumentKind.ID, rejected_at)
        documents[DocumentKind.LICENCE] = make_artifact(DocumentKind.LICENCE, rejected_at + timedelta(seconds=1))
        case = case.model_copy(update={"documents": documents})
        assert case.slots_pending_resubmission() == [DocumentKind.ID]
