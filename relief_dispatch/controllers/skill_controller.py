# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Controller: Volunteer skills — declare, edit, remove, list, verify."""
from fastapi import APIRouter, Depends, Response

from relief_dispatch.core.authorization import AuthorizationContext
from relief_dispatch.core.dependencies import get_auth_context, get_skill_service
from relief_dispatch.models.domain import VolunteerSkill
from relief_dispatch.schemas.dispatch import SkillCreateRequest, SkillUpdateRequest
from relief_dispatch.services.skill_service import SkillService

router = APIRouter(prefix="/api/v1", tags=["Skills"])


@router.post("/skills", status_code=201, response_model=VolunteerSkill)
def add_skill(body: SkillCreateRequest,
              auth: AuthorizationContext = Depends(get_auth_context),
              service: SkillService = Depends(get_skill_service)):
    return service.add_skill(auth, body.skill, level=body.level, certification=body.certification)


@router.get("/users/{user_id}/skills", response_model=list[VolunteerSkill])
def get_skills(user_id: str,
               auth: AuthorizationContext = Depends(get_auth_context),
               service: SkillService = Depends(get_skill_service)):
    return service.get_skills(user_id, auth)


@router.post("/users/{user_id}/skills/{skill_id}/verify", response_model=VolunteerSkill)
def verify_skill(user_id: str, skill_id: str,
                 auth: AuthorizationContext = Depends(get_auth_context),
                 service: SkillService = Depends(get_skill_service)):
    return service.verify_skill(user_id, skill_id, auth)


@router.put("/skills/{skill_id}", response_model=VolunteerSkill)
def update_skill(skill_id: str, body: SkillUpdateRequest,
                 auth: AuthorizationContext = Depends(get_auth_context),
                 service: SkillService = Depends(get_skill_service)):
    return service.update_skill(
        skill_id, auth, skill=body.skill, level=body.level, certification=body.certification,
    )


@router.delete("/skills/{skill_id}", status_code=204)
def delete_skill(skill_id: str,
                 auth: AuthorizationContext = Depends(get_auth_context),
                 service: SkillService = Depends(get_skill_service)):
    service.delete_skill(skill_id, auth)
    return Response(status_code=204)
