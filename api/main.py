from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
import logging, uuid

from tender_eligibility.main import EligibilityPipeline
from tender_eligibility.schemas import ContractorProfile, TenderRequirements

logger = logging.getLogger("tender_eligibility.api")

app = FastAPI()
app.add_middleware(CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"], allow_headers=["*"])

# In-process stores. Persistence lives behind the real storage service;
# these keep the same record shapes so the UI can be developed against them.
profiles = {}  # profile_id -> stored profile dict (camelCase)
tenders = {}   # tender_id -> stored requirements dict (camelCase)
verdicts = {}  # verdict_id -> Verdict

pipeline = EligibilityPipeline()


class MatchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    tender_id: str
    profile_id: str


def create_error_response(code: str, message: str, details=None, status: int = 400):
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "details": details}},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return create_error_response("VALIDATION_ERROR", "Validation failed",
                                 jsonable_errors(exc), 400)


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception("API error on %s", request.url.path)
    return create_error_response("INTERNAL_ERROR", str(exc) or "An unexpected error occurred",
                                 None, 500)


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


def _store(record: BaseModel) -> dict:
    data = record.model_dump(by_alias=True)
    data["id"] = str(uuid.uuid4())
    return data


@app.post("/profiles", status_code=201)
def create_profile(profile: ContractorProfile):
    data = _store(profile)
    profiles[data["id"]] = data
    return data


@app.get("/profiles/{profile_id}")
def get_profile(profile_id: str):
    if profile_id not in profiles:
        return create_error_response("NOT_FOUND", "Profile not found", None, 404)
    return profiles[profile_id]


@app.post("/tenders", status_code=201)
def create_tender(tender: TenderRequirements):
    data = _store(tender)
    tenders[data["id"]] = data
    return data


@app.get("/tenders/{tender_id}")
def get_tender(tender_id: str):
    if tender_id not in tenders:
        return create_error_response("NOT_FOUND", "Tender not found", None, 404)
    return tenders[tender_id]


@app.post("/verdicts/match", status_code=201)
def match(req: MatchRequest):
    # Sync route: the explainer blocks on the LLM, FastAPI runs this in
    # its threadpool.
    tender = tenders.get(req.tender_id)
    profile = profiles.get(req.profile_id)
    if tender is None:
        return create_error_response("NOT_FOUND", "Tender not found", None, 404)
    if profile is None:
        return create_error_response("NOT_FOUND", "Profile not found", None, 404)

    verdict = pipeline.run(profile, tender,
                           tender_id=req.tender_id, profile_id=req.profile_id)
    verdicts[verdict.id] = verdict
    return verdict.model_dump(mode="json", by_alias=True)


@app.get("/verdicts")
def list_verdicts():
    ordered = sorted(verdicts.values(), key=lambda v: v.created_at, reverse=True)
    return [
        {
            "id": v.id,
            "overallVerdict": v.overall_verdict,
            "confidenceScore": v.confidence_score,
            "overallExplanation": v.overall_explanation,
            "createdAt": v.created_at.isoformat(),
            "tender": {
                "id": v.tender_id,
                "tenderNumber": tenders.get(v.tender_id, {}).get("tenderNumber"),
            },
        }
        for v in ordered
    ]


@app.get("/verdicts/{verdict_id}")
def get_verdict(verdict_id: str):
    verdict = verdicts.get(verdict_id)
    if verdict is None:
        return create_error_response("NOT_FOUND", "Verdict not found", None, 404)
    return verdict.model_dump(mode="json", by_alias=True)
