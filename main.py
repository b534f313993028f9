from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional, Union
import asyncio
import logging
import uvicorn

from blockchain import BlockchainService
from schemas import (
    BatchIdResponse,
    CreateHoneyBatchRequest,
    FarmerBatchesResponse,
    FLOWER_TYPE_LABELS,
    FlowerTypeOption,
    HoneyListResponse,
    HoneyRecord,
    HoneyRecordRequest,
    HoneyRecordResponse,
    LedgerVerifyResponse,
    LoginRequest,
    LoginResponse,
    OptionsResponse,
    Pagination,
    QRCodeResponse,
    Region,
    SubmissionResponse,
    SuccessResponse,
    SyncResponse,
    UserInfo,
    VerificationResponse,
    WalletConnectRequest,
)
from config import settings
from store import HoneyBatchStore, RecordStoreError
from utils import format_transaction_hash_display, generate_explorer_url, is_valid_address, verify_url
from auth import (
    AuthService,
    SessionContext,
    get_auth_service,
    require_admin,
    require_auth,
    require_beekeeper,
    require_wallet,
)
from services import (
    BatchNotFoundError,
    LedgerSyncService,
    LedgerWriteError,
    QRService,
    SubmissionService,
    UpstreamFailure,
    VerificationService,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("honeytrace.backend")

# Global services
record_store: Optional[HoneyBatchStore] = None
blockchain_service: Optional[BlockchainService] = None
qr_service: Optional[QRService] = None
verification_service: Optional[VerificationService] = None
submission_service: Optional[SubmissionService] = None
sync_service: Optional[LedgerSyncService] = None


def _require_service(service, name: str):
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} service is not available")
    return service


def get_store() -> HoneyBatchStore:
    return _require_service(record_store, "Record store")


def get_ledger() -> BlockchainService:
    return _require_service(blockchain_service, "Blockchain")


def get_qr_service() -> QRService:
    return _require_service(qr_service, "QR code")


def get_verification_service() -> VerificationService:
    return _require_service(verification_service, "Verification")


def get_submission_service() -> SubmissionService:
    return _require_service(submission_service, "Batch submission")


def get_sync_service() -> LedgerSyncService:
    return _require_service(sync_service, "Ledger sync")


def _user_info(session: SessionContext) -> UserInfo:
    return UserInfo(
        username=session.username,
        role=session.role,
        walletAddress=session.wallet_address,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    global record_store, blockchain_service, qr_service, verification_service, submission_service, sync_service

    try:
        record_store = HoneyBatchStore.from_settings(settings)
        await asyncio.to_thread(record_store.ensure_schema)
    except RecordStoreError as exc:
        logger.error(f"Record store unavailable, continuing with the ledger only: {exc}")
        record_store = None

    blockchain_service = BlockchainService()
    try:
        await blockchain_service.initialize()
    except Exception as exc:
        logger.error(f"Blockchain unavailable, continuing with the record store only: {exc}")
        blockchain_service = None

    qr_service = QRService(settings.QR_CACHE_DIR)
    verification_service = VerificationService(store=record_store, ledger=blockchain_service)
    if blockchain_service is not None:
        submission_service = SubmissionService(blockchain_service, record_store, qr_service)
        if record_store is not None:
            sync_service = LedgerSyncService(blockchain_service, record_store)

    yield

    # Shutdown
    if record_store is not None:
        record_store.close()

app = FastAPI(
    title="HoneyTrace Backend API",
    description="Honey batch provenance: beekeeper submissions anchored on chain, consumer verification",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {"message": "HoneyTrace Backend API", "status": "running"}

@app.get("/health")
async def health_check():
    store_ok = False
    if record_store is not None:
        store_ok = await asyncio.to_thread(record_store.check_connection)
    ledger_ok = False
    if blockchain_service is not None:
        ledger_ok = await blockchain_service.check_connection()

    if not store_ok and not ledger_ok:
        raise HTTPException(status_code=503, detail="Service unhealthy: no record source is reachable")

    return {
        "status": "healthy" if store_ok and ledger_ok else "degraded",
        "database_connected": store_ok,
        "blockchain_connected": ledger_ok,
        "network": settings.NETWORK_NAME,
    }

@app.get("/options", response_model=OptionsResponse)
async def get_options():
    """Regions and flower types accepted by the submission form"""
    return OptionsResponse(
        regions=[region.value for region in Region],
        flowerTypes=[FlowerTypeOption(value=value, label=label) for value, label in FLOWER_TYPE_LABELS.items()],
    )

# Authentication Endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Beekeeper / admin login, returns a bearer token"""
    session = auth.authenticate_user(request.username, request.password)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    logger.info(f"User {session.username} logged in as {session.role.value}")
    return LoginResponse(
        success=True,
        token=session.token,
        user=_user_info(session).model_dump(),
        message=f"Logged in as {session.role.value}"
    )

@app.post("/auth/logout", response_model=SuccessResponse)
async def logout(session: SessionContext = Depends(require_auth), auth: AuthService = Depends(get_auth_service)):
    auth.logout(session.token)
    return SuccessResponse(message="Logged out")

@app.get("/auth/me", response_model=UserInfo)
async def get_current_user_info(session: SessionContext = Depends(require_auth)):
    """Get current session information"""
    return _user_info(session)

@app.post("/auth/wallet", response_model=UserInfo)
async def connect_wallet(
    request: WalletConnectRequest,
    session: SessionContext = Depends(require_auth),
    auth: AuthService = Depends(get_auth_service),
):
    """Bind a wallet address to the current session"""
    updated = auth.bind_wallet(session.token, request.walletAddress)
    if updated is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    logger.info(f"Wallet {request.walletAddress} connected for {session.username}")
    return _user_info(updated)

@app.delete("/auth/wallet", response_model=UserInfo)
async def disconnect_wallet(session: SessionContext = Depends(require_auth), auth: AuthService = Depends(get_auth_service)):
    updated = auth.bind_wallet(session.token, None)
    if updated is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return _user_info(updated)

# Batch Submission Endpoints
@app.get("/batch/new-id", response_model=BatchIdResponse)
async def new_batch_id(session: SessionContext = Depends(require_beekeeper)):
    return BatchIdResponse(batchId=SubmissionService.new_batch_id())

@app.post("/batch", response_model=SubmissionResponse)
async def submit_batch(
    request: CreateHoneyBatchRequest,
    session: SessionContext = Depends(require_wallet),
    submissions: SubmissionService = Depends(get_submission_service),
):
    """Anchor a honey batch on the blockchain and mirror it into the record store"""
    try:
        result = await submissions.submit(request, session.username, session.wallet_address)
    except LedgerWriteError as e:
        logger.error(str(e))
        raise HTTPException(status_code=502, detail=f"Failed to record batch on the blockchain: {e}")
    except Exception as e:
        logger.error(f"Batch submission failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to submit batch: {str(e)}")

    logger.info(f"Batch {result.display_id} submitted by {session.username} in tx {format_transaction_hash_display(result.transaction_hash)}")

    return SubmissionResponse(
        message="Batch recorded successfully" + ("" if result.mirrored else " (database mirror pending)"),
        displayId=result.display_id,
        transactionHash=result.transaction_hash,
        explorerUrl=generate_explorer_url(result.transaction_hash),
        farmer=result.farmer,
        walletAddress=result.wallet_address,
        timestamp=result.timestamp,
        qrCodeUrl=result.qr_code_url,
        qrImageBase64=result.qr_image_base64,
        mirrored=result.mirrored,
    )

@app.get("/batch/{batch_id}/qr", response_model=QRCodeResponse)
async def get_batch_qr(batch_id: str, qr: QRService = Depends(get_qr_service)):
    """QR code that opens the verify page for this batch"""
    return QRCodeResponse(**qr.generate(batch_id, verify_url(batch_id)))

# Record Store Endpoints
@app.get("/honey", response_model=Union[HoneyRecordResponse, HoneyListResponse])
async def get_honey(
    batchId: Optional[str] = None,
    listAll: bool = False,
    flowerType: Optional[str] = None,
    region: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: HoneyBatchStore = Depends(get_store),
):
    """Single stored batch by id, or a filtered, paginated listing"""
    try:
        if batchId:
            row = await asyncio.to_thread(store.get, batchId)
            if not row:
                raise HTTPException(status_code=404, detail="Batch not found")
            return HoneyRecordResponse(data=HoneyRecord(**row))

        if listAll:
            rows, total = await asyncio.to_thread(
                store.list_batches,
                flower_type=flowerType,
                region=region,
                search=search,
                limit=limit,
                offset=offset,
            )
            return HoneyListResponse(
                data=[HoneyRecord(**row) for row in rows],
                pagination=Pagination(total=total, limit=limit, offset=offset),
            )
    except HTTPException:
        raise
    except RecordStoreError as e:
        logger.error(f"Record store query failed: {e}")
        raise HTTPException(status_code=503, detail="Failed to retrieve honey batch data")

    raise HTTPException(status_code=400, detail="Either batchId or listAll parameter is required")

@app.post("/honey", response_model=HoneyRecordResponse)
async def save_honey(
    request: HoneyRecordRequest,
    session: SessionContext = Depends(require_beekeeper),
    store: HoneyBatchStore = Depends(get_store),
):
    """Write a batch straight into the record store (last write wins)"""
    try:
        row = await asyncio.to_thread(
            store.upsert,
            {
                "batch_id": request.batchId,
                "beekeeper_name": request.beekeeperName,
                "harvest_date": request.harvestDate,
                "flower_type": request.flowerType,
                "description": request.description,
                "region": request.region,
                "qr_code_url": request.qrCodeUrl or verify_url(request.batchId),
                "certificate_hash": request.certificateHash,
            },
        )
    except RecordStoreError as e:
        logger.error(f"Failed to save batch {request.batchId}: {e}")
        raise HTTPException(status_code=503, detail="Failed to save honey batch data")

    logger.info(f"Batch {request.batchId} saved by {session.username}")
    return HoneyRecordResponse(data=HoneyRecord(**row))

# Consumer Verification Endpoints (public)
@app.get("/verify/{batch_id}", response_model=VerificationResponse)
async def verify_batch(batch_id: str, verifier: VerificationService = Depends(get_verification_service)):
    """Look the batch up (database, then blockchain) and assess its authenticity"""
    batch_id = batch_id.strip()
    try:
        outcome = await verifier.verify(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")
    except UpstreamFailure as e:
        logger.error(f"Verification of {batch_id} failed upstream: {e.errors}")
        raise HTTPException(
            status_code=503,
            detail="Failed to verify batch. Please check your internet connection and try again.",
        )

    return VerificationResponse(
        batchId=batch_id,
        source=outcome.source,
        record=outcome.record,
        verdict=outcome.verdict,
        flowerTypeLabel=FLOWER_TYPE_LABELS.get(outcome.record.flowerType, outcome.record.flowerType),
        explorerUrl=generate_explorer_url(outcome.record.blockchainTxHash or ""),
    )

@app.get("/ledger/{batch_id}/verify", response_model=LedgerVerifyResponse)
async def ledger_verify(batch_id: str, ledger: BlockchainService = Depends(get_ledger)):
    """The contract's own verifyBatch answer"""
    try:
        verified = await ledger.verify_batch(batch_id)
    except Exception as e:
        logger.error(f"verifyBatch call failed for {batch_id}: {e}")
        raise HTTPException(status_code=503, detail="Blockchain is not reachable, try again later")
    return LedgerVerifyResponse(batchId=batch_id, verified=verified)

@app.get("/ledger/farmer/{address}", response_model=FarmerBatchesResponse)
async def farmer_batches(address: str, ledger: BlockchainService = Depends(get_ledger)):
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail="Invalid farmer address")
    try:
        batch_ids = await ledger.get_farmer_batches(address)
    except Exception as e:
        logger.error(f"farmerBatches lookup failed for {address}: {e}")
        raise HTTPException(status_code=503, detail="Blockchain is not reachable, try again later")
    return FarmerBatchesResponse(farmer=address, batchIds=batch_ids)

# Admin Endpoints
@app.post("/admin/sync", response_model=SyncResponse)
async def run_sync(session: SessionContext = Depends(require_admin), sync: LedgerSyncService = Depends(get_sync_service)):
    """Copy batches that exist on chain but not in the record store"""
    try:
        report = await sync.run_once()
    except Exception as e:
        logger.error(f"Ledger sync failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Ledger sync failed: {str(e)}")
    return SyncResponse(scanned=report.scanned, inserted=report.inserted, failed=report.failed)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
