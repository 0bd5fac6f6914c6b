# main.py
# HTTP surface: dependency wiring, error mapping and the route table.

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config, llm, models
from .emails import EmailDispatcher, OutboxDispatcher, ResendDispatcher
from .errors import ProcurementError
from .inbound import InboundService
from .logging_config import setup_logging
from .proposals import ProposalService
from .rfps import RFPService
from .storage import JsonStorage
from .vendors import VendorService

log = logging.getLogger("rfpcloud.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(title="RFP Cloud API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProcurementError)
async def procurement_error_handler(request: Request, exc: ProcurementError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- dependencies (overridden in tests) ---

@lru_cache
def get_storage() -> JsonStorage:
    return JsonStorage(config.DATA_DIR)


@lru_cache
def get_generator() -> llm.TextGenerator:
    return llm.build_generator()


def get_mailbox() -> Optional[ResendDispatcher]:
    if config.RESEND_API_KEY:
        return ResendDispatcher(config.RESEND_API_KEY, config.FROM_EMAIL)
    return None


def get_dispatcher(storage: JsonStorage = Depends(get_storage),
                   mailbox: Optional[ResendDispatcher] = Depends(get_mailbox)) -> EmailDispatcher:
    return mailbox or OutboxDispatcher(storage, config.FROM_EMAIL)


def get_vendor_service(storage: JsonStorage = Depends(get_storage)) -> VendorService:
    return VendorService(storage)


def get_proposal_service(storage: JsonStorage = Depends(get_storage)) -> ProposalService:
    return ProposalService(storage)


def get_rfp_service(storage: JsonStorage = Depends(get_storage),
                    generator: llm.TextGenerator = Depends(get_generator),
                    dispatcher: EmailDispatcher = Depends(get_dispatcher)) -> RFPService:
    return RFPService(storage, generator, dispatcher)


def get_inbound_service(storage: JsonStorage = Depends(get_storage),
                        rfps: RFPService = Depends(get_rfp_service),
                        mailbox: Optional[ResendDispatcher] = Depends(get_mailbox)) -> InboundService:
    return InboundService(storage, rfps, fetcher=mailbox)


# --- RFP endpoints ---
@app.post("/api/v1/rfps/preview", response_model=models.StructuredRFP)
def preview_rfp(body: models.RFPCreateRequest, svc: RFPService = Depends(get_rfp_service)):
    return svc.preview_rfp(body.text)


@app.post("/api/v1/rfps", response_model=models.RFP, status_code=201)
def create_rfp(body: models.RFPCreateRequest, svc: RFPService = Depends(get_rfp_service)):
    return svc.create_rfp(body.text)


@app.get("/api/v1/rfps", response_model=List[models.RFP])
def list_rfps(svc: RFPService = Depends(get_rfp_service)):
    return svc.list_rfps()


@app.get("/api/v1/rfps/{rfp_id}", response_model=models.RFP)
def get_rfp(rfp_id: str, svc: RFPService = Depends(get_rfp_service)):
    return svc.get_rfp(rfp_id)


@app.delete("/api/v1/rfps/{rfp_id}")
def delete_rfp(rfp_id: str, svc: RFPService = Depends(get_rfp_service)):
    svc.delete_rfp(rfp_id)
    return {"success": True}


@app.get("/api/v1/rfps/{rfp_id}/vendors", response_model=models.RFPWithVendors)
def rfp_vendors(rfp_id: str, svc: RFPService = Depends(get_rfp_service)):
    return svc.get_rfp_with_vendors(rfp_id)


# --- Send RFP ---
@app.post("/api/v1/rfps/{rfp_id}/send", response_model=models.SendResult)
def send_rfp(rfp_id: str, body: models.SendRequest, svc: RFPService = Depends(get_rfp_service)):
    return svc.send_rfp_to_vendors(rfp_id, body.vendor_ids)


# --- Proposals for an RFP ---
@app.post("/api/v1/rfps/{rfp_id}/proposals", response_model=models.Proposal, status_code=201)
def submit_proposal(rfp_id: str, body: models.ProposalSubmit, svc: RFPService = Depends(get_rfp_service)):
    return svc.process_vendor_proposal(rfp_id, body.vendor_email, body.email_body)


@app.get("/api/v1/rfps/{rfp_id}/proposals", response_model=List[models.Proposal])
def list_proposals_for_rfp(rfp_id: str, svc: ProposalService = Depends(get_proposal_service)):
    return svc.proposals_for_rfp(rfp_id)


@app.get("/api/v1/rfps/{rfp_id}/stats", response_model=models.ProposalStats)
def proposal_stats(rfp_id: str, svc: ProposalService = Depends(get_proposal_service)):
    return svc.stats(rfp_id)


@app.api_route("/api/v1/rfps/{rfp_id}/compare", methods=["GET", "POST"], response_model=models.Comparison)
def compare_proposals(rfp_id: str, svc: RFPService = Depends(get_rfp_service)):
    return svc.compare_proposals(rfp_id)


# --- Vendor endpoints ---
@app.post("/api/v1/vendors", response_model=models.Vendor, status_code=201)
def create_vendor(vendor: models.VendorCreate, svc: VendorService = Depends(get_vendor_service)):
    return svc.create_vendor(vendor)


@app.get("/api/v1/vendors", response_model=List[models.Vendor])
def list_vendors(svc: VendorService = Depends(get_vendor_service)):
    return svc.list_vendors()


@app.get("/api/v1/vendors/search/{query}", response_model=List[models.Vendor])
def search_vendors(query: str, svc: VendorService = Depends(get_vendor_service)):
    return svc.search_vendors(query)


@app.get("/api/v1/vendors/{vendor_id}", response_model=models.Vendor)
def get_vendor(vendor_id: str, svc: VendorService = Depends(get_vendor_service)):
    return svc.get_vendor(vendor_id)


@app.put("/api/v1/vendors/{vendor_id}", response_model=models.Vendor)
def update_vendor(vendor_id: str, body: models.VendorUpdate, svc: VendorService = Depends(get_vendor_service)):
    return svc.update_vendor(vendor_id, body)


@app.delete("/api/v1/vendors/{vendor_id}")
def delete_vendor(vendor_id: str, svc: VendorService = Depends(get_vendor_service)):
    svc.delete_vendor(vendor_id)
    return {"success": True}


# --- Proposal endpoints ---
@app.get("/api/v1/proposals", response_model=List[models.Proposal])
def list_proposals(svc: ProposalService = Depends(get_proposal_service)):
    return svc.list_proposals()


@app.get("/api/v1/proposals/vendor/{vendor_id}", response_model=List[models.Proposal])
def list_proposals_for_vendor(vendor_id: str, svc: ProposalService = Depends(get_proposal_service)):
    return svc.proposals_for_vendor(vendor_id)


@app.get("/api/v1/proposals/{proposal_id}", response_model=models.Proposal)
def get_proposal(proposal_id: str, svc: ProposalService = Depends(get_proposal_service)):
    return svc.get_proposal(proposal_id)


@app.delete("/api/v1/proposals/{proposal_id}")
def delete_proposal(proposal_id: str, svc: ProposalService = Depends(get_proposal_service)):
    svc.delete_proposal(proposal_id)
    return {"success": True}


# --- Inbound webhook (vendor replies) ---
@app.post("/api/v1/email/inbound")
def inbound_email(payload: models.InboundPayload, svc: InboundService = Depends(get_inbound_service)):
    # Always 200: a non-2xx makes the mail provider retry the same email.
    if payload.type and payload.type != "email.received":
        return {"status": "ignored", "success": True, "message": f"Ignored event {payload.type}"}
    try:
        email = svc.receive(payload)
    except ProcurementError as e:
        log.warning("Inbound email not processed: %s", e.message)
        return {"status": "received", "success": False, "error": e.message}
    return {"status": "accepted", "success": True, "email_id": email.id, "proposal_id": email.proposal_id}


@app.get("/api/v1/email/unprocessed", response_model=List[models.InboundEmail])
def unprocessed_emails(rfp_id: Optional[str] = None, svc: InboundService = Depends(get_inbound_service)):
    return svc.list_unprocessed(rfp_id)


@app.post("/api/v1/email/{email_id}/reparse", response_model=models.InboundEmail)
def reparse_email(email_id: str, svc: InboundService = Depends(get_inbound_service)):
    return svc.reparse(email_id)
