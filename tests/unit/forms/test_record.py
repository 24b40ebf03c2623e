"""Form record behaviour: identity resolution, gated mutators, completion, serialization."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from competency_engine.catalog import RequirementsCatalog
from competency_engine.domain.models import (
    ActorRole,
    AssessorIdentity,
    EvidenceType,
    FormType,
    Grade,
    LifecycleStatus,
    RequirementKey,
)
from competency_engine.forms import FormRecord, MutationReason, default_title

pytestmark = pytest.mark.unit

TRAINEE = ActorRole.TRAINEE
SUPERVISOR = ActorRole.EDUCATIONAL_SUPERVISOR


@pytest.fixture
def form(catalog: RequirementsCatalog) -> FormRecord:
    return FormRecord.new(
        catalog,
        FormType.EPA,
        3,
        "Oculoplastics",
        form_id="frm-record",
        now=datetime(2026, 3, 1, 9, 30, tzinfo=UTC),
    )


def _key(section: str, index: int) -> RequirementKey:
    return RequirementKey(FormType.EPA, 3, "Oculoplastics", section, index)


def _complete_section(form: FormRecord, letter: str) -> None:
    assert form.requirements is not None
    section = form.requirements.section(letter)
    assert section is not None
    form.mark_all_yes(letter, TRAINEE)
    for key in section.keys:
        form.set_comment(key, "Observed directly", TRAINEE)


def test_new_form_gets_default_title_and_resolved_requirements(form: FormRecord) -> None:
    assert form.title == "EPA Level 3 - Oculoplastics"
    assert form.status is LifecycleStatus.DRAFT
    assert form.requirements is not None
    assert [section.letter for section in form.requirements.sections] == ["B", "C", "D", "E", "F"]


def test_operating_list_specialty_switches_form_type(catalog: RequirementsCatalog) -> None:
    record = FormRecord.new(catalog, FormType.EPA, 2, "Operating List - Glaucoma")

    assert record.form_type is FormType.EPA_OPERATING_LIST
    assert record.specialty == "Operating List - Glaucoma"
    assert record.id.startswith("frm-")


def test_unknown_specialty_falls_back_to_the_level_default(catalog: RequirementsCatalog) -> None:
    record = FormRecord.new(catalog, FormType.EPA, 3, "Glaucoma")

    assert record.specialty == "Cataract Surgery"


def test_change_level_resets_an_invalid_specialty(
    form: FormRecord, catalog: RequirementsCatalog
) -> None:
    assert form.change_level(1, catalog, TRAINEE).applied

    assert form.level == 1
    assert form.specialty == "No attached SIA"
    assert form.title == default_title(FormType.EPA, 1, "No attached SIA")
    assert form.grading.requirements is form.requirements


def test_change_level_from_one_to_three_drops_the_generic_sentinel(
    catalog: RequirementsCatalog,
) -> None:
    record = FormRecord.new(catalog, FormType.EPA, 1, "No attached SIA")
    assert record.specialty == "No attached SIA"

    assert record.change_level(3, catalog, TRAINEE).applied

    assert record.level == 3
    assert record.specialty != "No attached SIA"
    assert catalog.is_valid_specialty(3, record.specialty, FormType.EPA)
    assert record.requirements is catalog.resolve(3, record.specialty)
    assert record.title == default_title(FormType.EPA, 3, record.specialty)


def test_change_level_keeps_a_custom_title(form: FormRecord, catalog: RequirementsCatalog) -> None:
    form.title = "Lid clinic, March"

    form.change_level(1, catalog, TRAINEE)

    assert form.title == "Lid clinic, March"


def test_change_level_rejects_bad_levels(form: FormRecord, catalog: RequirementsCatalog) -> None:
    with pytest.raises(ValueError, match="positive integer"):
        form.change_level(0, catalog, TRAINEE)


def test_change_specialty_is_gated(form: FormRecord, catalog: RequirementsCatalog) -> None:
    result = form.change_specialty("Cataract Surgery", catalog, SUPERVISOR)

    assert result.reason is MutationReason.ROLE_CANNOT_WRITE
    assert form.specialty == "Oculoplastics"


def test_level_change_keeps_earlier_grades(form: FormRecord, catalog: RequirementsCatalog) -> None:
    form.set_grade(_key("B", 0), Grade.YES, TRAINEE)

    form.change_level(1, catalog, TRAINEE)

    assert form.grading.grade(_key("B", 0)) is Grade.YES


def test_mutations_touch_updated_at(form: FormRecord) -> None:
    before = form.updated_at

    assert form.set_narrative("Lid lesion excision", TRAINEE).applied

    assert form.updated_at > before


def test_rejected_mutations_leave_updated_at(form: FormRecord) -> None:
    before = form.updated_at

    assert not form.set_narrative("late edit", SUPERVISOR)

    assert form.updated_at == before
    assert form.narrative == ""


def test_signed_off_form_rejects_everything(form: FormRecord) -> None:
    form.link(_key("B", 0), "ev1", TRAINEE)
    form.status = LifecycleStatus.SIGNED_OFF
    before = form.to_dict()

    results = [
        form.set_grade(_key("B", 0), Grade.YES, TRAINEE),
        form.set_comment(_key("B", 0), "x", SUPERVISOR),
        form.link(_key("B", 0), "ev1", TRAINEE),
        form.set_narrative("x", TRAINEE),
        form.set_entrustment(None, TRAINEE),
        form.mark_all_yes("B", SUPERVISOR),
        form.unlink(_key("B", 0), "ev1", TRAINEE),
        form.unlink(_key("B", 0), "ev1", SUPERVISOR),
    ]

    assert {result.reason for result in results} == {MutationReason.FORM_SIGNED_OFF}
    assert form.list_linked(_key("B", 0)) == ("ev1",)
    assert form.to_dict() == before


def test_link_accepts_narrative_key_and_rejects_other_forms_keys(form: FormRecord) -> None:
    assert form.link(form.narrative_key, "ev-reflection", TRAINEE).applied
    assert form.list_linked(form.narrative_key) == ("ev-reflection",)

    for foreign in (
        RequirementKey(FormType.EPA, 3, "Cataract Surgery", "B", 0),
        RequirementKey(FormType.EPA, 2, "Oculoplastics", "B", 0),
        RequirementKey(FormType.GSAT, 3, "Oculoplastics", "B", 0),
    ):
        assert form.link(foreign, "ev1", TRAINEE).reason is MutationReason.KEY_NOT_FOR_FORM
        assert form.set_grade(foreign, Grade.YES, TRAINEE).reason is (
            MutationReason.KEY_NOT_FOR_FORM
        )
        assert form.list_linked(foreign) == ()


def test_one_item_linked_to_two_criteria_survives_unlinking_one(form: FormRecord) -> None:
    first = RequirementKey.parse("EPA-L3-Oculoplastics-B-0")
    second = RequirementKey.parse("EPA-L3-Oculoplastics-C-2")

    assert form.link(first, "ev1", TRAINEE).applied
    assert form.link(second, "ev1", TRAINEE).applied
    assert form.list_linked(first) == ("ev1",)
    assert form.list_linked(second) == ("ev1",)

    assert form.unlink(first, "ev1", TRAINEE).applied

    assert form.list_linked(first) == ()
    assert form.list_linked(second) == ("ev1",)


def test_keys_beyond_the_catalog_take_grades(form: FormRecord) -> None:
    extra = RequirementKey.parse("EPA-L3-Oculoplastics-C-2")
    assert form.requirements is not None
    assert extra not in form.requirements

    assert form.set_grade(extra, Grade.YES, TRAINEE).applied
    assert form.set_comment(extra, "Ptosis clinic", TRAINEE).applied

    assert form.grading.grade(extra) is Grade.YES
    assert form.completeness() == 0


def test_mark_all_yes_unknown_section(form: FormRecord) -> None:
    assert form.mark_all_yes("G", TRAINEE).reason is MutationReason.UNKNOWN_SECTION
    assert form.mark_all_yes("G", SUPERVISOR).reason is MutationReason.ROLE_CANNOT_WRITE


def test_mark_all_yes_rejects_keys_of_another_form(form: FormRecord) -> None:
    own = _key("B", 0)
    foreign = RequirementKey(FormType.EPA, 1, "No attached SIA", "B", 0)

    result = form.mark_all_yes([own, foreign], TRAINEE)

    assert result.reason is MutationReason.KEY_NOT_FOR_FORM
    assert form.grading.grade(own) is None


def test_mark_all_yes_on_the_evidence_scale_is_a_rejection(catalog: RequirementsCatalog) -> None:
    record = FormRecord.new(catalog, FormType.GSAT, 2, "Non-patient Management")
    assert record.requirements is not None
    letter = record.requirements.sections[0].letter

    assert record.mark_all_yes(letter, TRAINEE).reason is MutationReason.NO_FULL_GRADE

    record.status = LifecycleStatus.SIGNED_OFF
    assert record.mark_all_yes(letter, TRAINEE).reason is MutationReason.FORM_SIGNED_OFF
    assert record.mark_all_yes("B", SUPERVISOR).reason is MutationReason.FORM_SIGNED_OFF


def test_invalid_entrustment_raises(form: FormRecord) -> None:
    with pytest.raises(ValueError, match="not valid for EPA"):
        form.set_entrustment("Can do unsupervised", TRAINEE)


def test_linked_evidence_does_not_replace_a_grade(form: FormRecord) -> None:
    form.link(_key("B", 0), "ev1", TRAINEE)

    assert not form.is_complete(_key("B", 0))


def test_completeness_counts_whole_sections(form: FormRecord) -> None:
    assert form.completeness() == 0

    _complete_section(form, "B")
    assert form.section_complete("B")
    assert form.completeness() == 20

    for letter in ("C", "D", "E", "F"):
        _complete_section(form, letter)
    assert form.completeness() == 100


def test_section_complete_is_false_for_missing_sections(form: FormRecord) -> None:
    assert not form.section_complete("G")


def test_submission_issues_in_guard_order(form: FormRecord) -> None:
    assert form.submission_issues(None) == ("entrustment_missing", "assessor_missing")

    form.entrustment = "Somewhere in between"
    bad = AssessorIdentity(name="", email="not-an-email", registration="12")
    assert form.submission_issues(bad) == (
        "entrustment_invalid",
        "assessor_name_missing",
        "assessor_email_invalid",
        "assessor_registration_invalid",
    )


def test_narrative_required_for_workplace_assessments(catalog: RequirementsCatalog) -> None:
    record = FormRecord.new(catalog, FormType.DOPS, 2, "Glaucoma")
    assessor = AssessorIdentity(name="Dr Ada Approver", email="approver@example.org")

    assert record.submission_issues(assessor) == ("narrative_missing",)

    record.set_narrative("Selective laser trabeculoplasty", TRAINEE)
    assert record.submission_issues(assessor) == ()


def test_operating_list_requires_every_criterion_rated(catalog: RequirementsCatalog) -> None:
    record = FormRecord.new(catalog, FormType.EPA, 3, "Operating List - Cataract")
    record.set_entrustment("Can do unsupervised", TRAINEE)
    assessor = AssessorIdentity(name="Dr Ada Approver", email="approver@example.org")

    assert record.submission_issues(assessor) == ("criteria_unrated",)

    assert record.mark_all_yes("B", TRAINEE).applied
    assert record.grading.grade(record.requirements.keys()[0]) is Grade.COMPETENT
    assert record.submission_issues(assessor) == ()


def test_round_trip_preserves_state(form: FormRecord, catalog: RequirementsCatalog) -> None:
    form.set_grade(_key("C", 1), Grade.RESERVATION, TRAINEE)
    form.set_comment(_key("C", 1), "Needs more practice", TRAINEE)
    form.link(_key("E", 3), "ev-logbook", TRAINEE)
    form.set_entrustment("Competent to this level", TRAINEE)
    form.set_assessor(
        AssessorIdentity(name="Dr Ada Approver", email="approver@example.org"), TRAINEE
    )

    restored = FormRecord.from_dict(form.to_dict(), catalog)

    assert restored.to_dict() == form.to_dict()
    assert restored.requirements is form.requirements


def test_from_dict_rejects_unknown_fields(form: FormRecord, catalog: RequirementsCatalog) -> None:
    data = form.to_dict()
    data["colour"] = "blue"

    with pytest.raises(ValueError, match="unexpected fields"):
        FormRecord.from_dict(data, catalog)


def test_from_dict_rejects_other_schema_versions(
    form: FormRecord, catalog: RequirementsCatalog
) -> None:
    data = form.to_dict()
    data["schema_version"] = 2

    with pytest.raises(ValueError, match="schema_version"):
        FormRecord.from_dict(data, catalog)


def test_from_dict_reports_missing_fields(catalog: RequirementsCatalog) -> None:
    with pytest.raises(ValueError, match="missing required fields"):
        FormRecord.from_dict({"schema_version": 1, "id": "frm-x"}, catalog)


def test_evidence_summary_projection(form: FormRecord) -> None:
    summary = form.to_evidence_summary()

    assert summary.id == form.id == summary.form_id
    assert summary.evidence_type is EvidenceType.EPA
    assert summary.date == "2026-03-01"
    assert (summary.level, summary.specialty) == (3, "Oculoplastics")


def test_summary_from_snapshot_matches_the_live_projection(form: FormRecord) -> None:
    assert FormRecord.summary_from_snapshot(form.to_dict()) == form.to_evidence_summary()


def test_summary_from_snapshot_reflects_the_snapshot_not_later_edits(form: FormRecord) -> None:
    snapshot = form.to_dict()
    form.title = "Renamed after the snapshot"
    form.status = LifecycleStatus.SUBMITTED

    summary = FormRecord.summary_from_snapshot(snapshot)

    assert summary.title == "EPA Level 3 - Oculoplastics"
    assert summary.status is LifecycleStatus.DRAFT
    assert summary.date == "2026-03-01"
