# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Declaring and verifying volunteer skills."""
import pytest

from conftest import auth_for, make_user, report
from relief_dispatch.core.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from relief_dispatch.models.domain import Role
from relief_dispatch.services.notification_dispatcher import SKILL_VERIFIED


@pytest.fixture
def newcomer(repos):
    return make_user(repos, "Nia Newcomer", Role.VOLUNTEER, 10.0, 20.0)


class TestAddSkill:
    def test_new_skill_is_unverified(self, services, newcomer):
        skill = services.skills.add_skill(auth_for(newcomer), "First Aid", "advanced", "Red Cross 2024")
        assert skill.skill == "First Aid"
        assert skill.level == "advanced"
        assert skill.certification == "Red Cross 2024"
        assert skill.verified is False

    def test_duplicate_name_ignores_case(self, services, newcomer):
        services.skills.add_skill(auth_for(newcomer), "First Aid")
        with pytest.raises(ConflictError):
            services.skills.add_skill(auth_for(newcomer), "first aid")

    def test_unknown_level(self, services, newcomer):
        with pytest.raises(InvalidInputError) as exc_info:
            services.skills.add_skill(auth_for(newcomer), "rescue", "guru")
        assert exc_info.value.context["allowed"] == ["beginner", "intermediate", "advanced", "expert"]

    def test_empty_name(self, services, newcomer):
        with pytest.raises(InvalidInputError):
            services.skills.add_skill(auth_for(newcomer), "  ")

    def test_unknown_actor(self, services, newcomer):
        ghost = newcomer.model_copy(update={"id": "ghost"})
        with pytest.raises(NotFoundError):
            services.skills.add_skill(auth_for(ghost), "rescue")


class TestVerifySkill:
    def test_coordinator_verifies_and_notifies(self, services, newcomer, coordinator, dispatcher):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        verified = services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        assert verified.verified is True
        assert verified.verified_by == coordinator.id
        assert verified.verified_at is not None
        user_id, event, payload = dispatcher.notify_user.call_args.args
        assert (user_id, event) == (newcomer.id, SKILL_VERIFIED)
        assert payload["skill"]["id"] == skill.id

    def test_volunteer_cannot_self_verify(self, services, newcomer):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        with pytest.raises(UnauthorizedError):
            services.skills.verify_skill(newcomer.id, skill.id, auth_for(newcomer))

    def test_unknown_skill(self, services, newcomer, coordinator):
        with pytest.raises(NotFoundError):
            services.skills.verify_skill(newcomer.id, "missing", auth_for(coordinator))

    def test_skill_of_another_user_is_not_found(self, services, newcomer, volunteer, coordinator):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        with pytest.raises(NotFoundError):
            services.skills.verify_skill(volunteer.id, skill.id, auth_for(coordinator))

    def test_verified_skill_makes_volunteer_a_candidate(self, services, newcomer, citizen, coordinator):
        inc = report(services, citizen)
        assert services.matching.find_candidates(inc) == []
        skill = services.skills.add_skill(auth_for(newcomer), "Rescue", "expert")
        assert services.matching.find_candidates(inc) == []
        services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        candidates = services.matching.find_candidates(inc)
        assert [c.volunteer.id for c in candidates] == [newcomer.id]
        assert candidates[0].score == 3


class TestGetSkills:
    def test_owner_and_coordinator_can_list(self, services, newcomer, coordinator):
        services.skills.add_skill(auth_for(newcomer), "rescue")
        assert [s.skill for s in services.skills.get_skills(newcomer.id, auth_for(newcomer))] == ["rescue"]
        assert len(services.skills.get_skills(newcomer.id, auth_for(coordinator))) == 1

    def test_other_volunteer_cannot_list(self, services, newcomer, volunteer):
        with pytest.raises(UnauthorizedError):
            services.skills.get_skills(newcomer.id, auth_for(volunteer))

    def test_unknown_user(self, services, coordinator):
        with pytest.raises(NotFoundError):
            services.skills.get_skills("missing", auth_for(coordinator))


class TestUpdateSkill:
    def test_level_change_drops_verification_and_matching_follows(self, services, newcomer, citizen, coordinator):
        inc = report(services, citizen)
        skill = services.skills.add_skill(auth_for(newcomer), "rescue", "expert")
        services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        assert services.matching.find_candidates(inc)[0].score == 3

        updated = services.skills.update_skill(skill.id, auth_for(newcomer), level="beginner")

        assert updated.level == "beginner"
        assert updated.verified is False
        assert updated.verified_by is None
        assert services.matching.find_candidates(inc) == []

        services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        candidates = services.matching.find_candidates(inc)
        assert candidates[0].score == 0
        assert candidates[0].matched_skills[0].level == "beginner"

    def test_rename_drops_verification(self, services, newcomer, coordinator):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        updated = services.skills.update_skill(skill.id, auth_for(newcomer), skill="Swift Water Rescue")
        assert updated.skill == "Swift Water Rescue"
        assert updated.verified is False

    def test_certification_or_case_change_keeps_verification(self, services, newcomer, coordinator):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue", "advanced")
        services.skills.verify_skill(newcomer.id, skill.id, auth_for(coordinator))
        updated = services.skills.update_skill(
            skill.id, auth_for(newcomer), skill="Rescue", level="advanced", certification="FEMA 2025",
        )
        assert updated.skill == "Rescue"
        assert updated.certification == "FEMA 2025"
        assert updated.verified is True

    def test_rename_onto_existing_name_is_conflict(self, services, newcomer):
        services.skills.add_skill(auth_for(newcomer), "rescue")
        other = services.skills.add_skill(auth_for(newcomer), "medic")
        with pytest.raises(ConflictError):
            services.skills.update_skill(other.id, auth_for(newcomer), skill="RESCUE")

    def test_only_own_skills(self, services, newcomer, volunteer):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        with pytest.raises(NotFoundError):
            services.skills.update_skill(skill.id, auth_for(volunteer), level="expert")

    def test_unknown_level(self, services, newcomer):
        skill = services.skills.add_skill(auth_for(newcomer), "rescue")
        with pytest.raises(InvalidInputError):
            services.skills.update_skill(skill.id, auth_for(newcomer), level="guru")


class TestDeleteSkill:
    def test_deleted_skill_is_gone_and_no_longer_matches(self, services, volunteer, citizen):
        inc = report(services, citizen)
        assert [c.volunteer.id for c in services.matching.find_candidates(inc)] == [volunteer.id]
        services.skills.delete_skill(volunteer.skills[0].id, auth_for(volunteer))
        assert services.skills.get_skills(volunteer.id, auth_for(volunteer)) == []
        assert services.matching.find_candidates(inc) == []

    def test_cannot_delete_someone_elses_skill(self, services, repos, newcomer, volunteer):
        with pytest.raises(NotFoundError):
            services.skills.delete_skill(volunteer.skills[0].id, auth_for(newcomer))
        assert len(repos.users.get_user(volunteer.id).skills) == 1

    def test_unknown_skill(self, services, newcomer):
        with pytest.raises(NotFoundError):
            services.skills.delete_skill("missing", auth_for(newcomer))
