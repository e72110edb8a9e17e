"""
HTTP service for orahproof.

Thin FastAPI layer over the orchestrator: request models in, core results
out. Configuration is checked when the application starts.

    uvicorn orahproof.service:app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api_keys import ApiKeyService, ApiKeyStore, is_valid_address
from .config import Settings, is_production
from .exceptions import (
    LedgerAuthorizationError,
    LedgerAuthorizationSubmission,
    LedgerError,
    LedgerUnreachableError,
    LedgerUnreachableSubmission,
)
from .ledger import LedgerGateway, get_ledger_gateway
from .logging_config import audit_log, configure_logging, set_request_id
from .models import ApiKeyRequest, RevokeApiKeyRequest, VerificationRequest
from .orchestrator import VerificationOrchestrator
from .proof import Clock
from .util import format_instant, utc_now

logger = logging.getLogger(__name__)

SERVICE_NAME = "Orah Verification Service"
API_PREFIX = "/api/verification"


def ledger_status_code(exc: Exception) -> int:
    """HTTP status for a ledger fault: 403 identity, 503 outage, 502 refusal."""
    if isinstance(exc, (LedgerAuthorizationError, LedgerAuthorizationSubmission)):
        return 403
    if isinstance(exc, (LedgerUnreachableError, LedgerUnreachableSubmission)):
        return 503
    return 502


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[LedgerGateway] = None,
    key_store: Optional[ApiKeyStore] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build the application.

    The ledger gateway is created from settings at startup unless one is
    injected; a ConfigurationError there aborts startup.
    """
    settings = settings or Settings.from_env()

    def _startup(app: FastAPI):
        settings.check()
        configure_logging(settings.log_level, settings.log_json)
        app.state.gateway = gateway or get_ledger_gateway(settings)
        app.state.orchestrator = VerificationOrchestrator(
            config=settings.validation, gateway=app.state.gateway, clock=clock,
        )
        logger.info(
            "%s started: env=%s network=%s ledger=%s",
            SERVICE_NAME, settings.env, settings.network, settings.ledger_backend,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup(app)
        yield

    production = is_production(settings)
    app = FastAPI(
        title=SERVICE_NAME,
        version=__version__,
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.api_keys = ApiKeyService(key_store)

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation error", "details": details},
        )

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError):
        return JSONResponse(
            status_code=ledger_status_code(exc),
            content={
                "success": False,
                "error": str(exc),
                "retryable": exc.retryable,
                "detail": exc.detail,
            },
        )

    @app.get("/health")
    def health():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": format_instant(utc_now()),
            "version": __version__,
            "network": settings.network,
            "ledger": settings.ledger_backend,
        }

    @app.post(f"{API_PREFIX}/submit")
    def submit(req: VerificationRequest):
        orchestrator: VerificationOrchestrator = app.state.orchestrator
        record = orchestrator.process_verification(req.batch_id, req.readings())
        summary = orchestrator.get_validation_summary(record)

        validation = summary.to_dict()
        validation["issues"] = [i.to_dict() for i in record.validation_result.issues]
        if summary.is_valid:
            message = "IoT data verified successfully. Ready for blockchain submission."
            next_steps = [
                "Call the smart contract verifyProof() function with this proofHash",
                f"Use the batchId: {record.batch_id}",
                f"Use the proofHash: {record.proof_hash}",
            ]
        else:
            message = "IoT data validation failed. Please review the issues."
            next_steps = ["Fix the validation errors and resubmit"]

        return {
            "success": True,
            "proofData": {
                "batchId": record.batch_id,
                "proofHash": record.proof_hash,
                "iotDataHash": record.data_hash,
                "timestamp": record.timestamp,
                "validation": validation,
            },
            "message": message,
            "nextSteps": next_steps,
        }

    @app.get(f"{API_PREFIX}/status/{{batch_id}}")
    async def status(batch_id: str):
        record = await app.state.gateway.get_record(batch_id)
        if record is None:
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "batchId": batch_id,
                    "verified": False,
                    "message": f'Batch ID "{batch_id}" is not registered',
                },
            )
        return {
            "success": True,
            "batchId": batch_id,
            "verified": record.verified,
            "record": record.to_dict(),
        }

    @app.post(f"{API_PREFIX}/anchor")
    async def anchor(req: VerificationRequest, x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
        if not x_api_key:
            raise HTTPException(401, "Please provide an API key in the X-API-Key header")
        producer = app.state.api_keys.authenticate(x_api_key)
        if producer is None:
            raise HTTPException(401, "The provided API key is not valid or has been deactivated")
        if producer.lower() != req.producer_address.lower():
            audit_log.security_event(
                "producer_mismatch", severity="high",
                key_producer=producer, requested_producer=req.producer_address,
            )
            raise HTTPException(403, "API key does not belong to this producer")

        orchestrator: VerificationOrchestrator = app.state.orchestrator
        run = await orchestrator.verify_and_submit(req.batch_id, req.readings())
        body = {
            "batchId": run.batch_id,
            "state": run.state.value,
            "proofData": run.record.to_dict(),
        }
        if run.error is not None:
            return JSONResponse(
                status_code=ledger_status_code(run.error.cause),
                content={"success": False, **body, "error": run.error.to_dict()},
            )
        if not run.submitted:
            return {
                "success": False,
                **body,
                "message": "IoT data validation failed. Proof was not submitted.",
            }

        body["transaction"] = run.receipt.to_dict()
        if settings.ledger_backend == "web3":
            body["explorerUrl"] = f"{settings.network_info.explorer_url}/tx/{run.receipt.transaction_ref}"
        return {"success": True, **body}

    @app.post(f"{API_PREFIX}/generate-api-key")
    def generate_api_key(req: ApiKeyRequest):
        if not is_valid_address(req.producer_address):
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Valid Ethereum address required"},
            )
        api_key = app.state.api_keys.generate(req.producer_address)
        return {
            "success": True,
            "apiKey": api_key,
            "producerAddress": req.producer_address,
            "message": "Store this API key securely. It cannot be recovered.",
            "createdAt": format_instant(utc_now()),
        }

    @app.post(f"{API_PREFIX}/revoke-api-key")
    def revoke_api_key(req: RevokeApiKeyRequest):
        if not app.state.api_keys.revoke(req.api_key):
            return JSONResponse(status_code=404, content={"success": False, "error": "Unknown API key"})
        return {"success": True, "message": "API key revoked"}

    return app


app = create_app()
