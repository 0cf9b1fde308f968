"""
Profile Page FastAPI Application
Upload a PDF résumé, structure it with an LLM, enrich it, and publish it as a hosted page.
"""

# ============================================================================
# PART 1: IMPORTS
# ============================================================================

import html
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from profilegen.config import Settings, get_settings
from profilegen.errors import (
    ConfigurationError,
    ExtractionError,
    MalformedResponseError,
    ProfileGenError,
    UpstreamError,
)
from profilegen.extraction import extract_text
from profilegen.identity import BasicIdentity, ProfileIdentity, derive_profile_identity
from profilegen.medium import MediumClient
from profilegen.models import ProfileData, RenderOptions
from profilegen.parsing import coerce_profile_data
from profilegen.pipeline import ProfilePipeline
from profilegen.prompts import fill_template
from profilegen.selection import normalize_backend
from profilegen.store import ProfileNotFoundError, ProfileStore, sanitize_slug

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)
logger.info("=" * 80)
logger.info("Profile Page Service Started")
logger.info("=" * 80)


# ============================================================================
# PART 2: FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="AI Profile Page Builder")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5500",
        "http://127.0.0.1:5500",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("✓ CORS middleware configured for frontend development")


# ============================================================================
# PART 3: DEPENDENCIES
# ============================================================================

_pipeline: Optional[ProfilePipeline] = None
_store: Optional[ProfileStore] = None


def get_pipeline() -> ProfilePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ProfilePipeline(get_settings())
    return _pipeline


def get_store() -> ProfileStore:
    global _store
    if _store is None:
        _store = ProfileStore(get_settings().profile_store_dir)
    return _store


def get_medium() -> MediumClient:
    return MediumClient(get_settings())


def resolve_auth_id(header_value: Optional[str], fallback: Optional[str]) -> str:
    """Identity from the auth header, else the client-supplied fallback id."""
    auth_id = (header_value or "").strip() or (fallback or "").strip()
    if not auth_id:
        raise HTTPException(status_code=401, detail="You must sign in: no user identity was provided.")
    return auth_id


def raise_for_pipeline_error(e: Exception, action: str) -> None:
    """Maps pipeline failures onto HTTP errors."""
    if isinstance(e, ExtractionError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (ConfigurationError, MalformedResponseError)):
        raise HTTPException(status_code=502, detail=f"AI error while {action}: {e}")
    if isinstance(e, UpstreamError):
        raise HTTPException(status_code=503, detail=f"AI service unavailable while {action}: {e}")
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    raise HTTPException(status_code=500, detail=f"Error {action}: {e}")


def profile_response(record: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    payload = {
        "ok": True,
        "record": record,
        "slug": record["slug"],
        "username": record["username"],
        "path": f"/{record['slug']}",
    }
    payload.update(extra)
    return payload


class ProfileMetadataRequest(BaseModel):
    username: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = Field(None, description="Contact e-mail")
    identityAuthId: Optional[str] = Field(None, description="Fallback auth id when no auth header is sent")


class AugmentRequest(BaseModel):
    instructions: str = Field(..., description="Free-text enrichment instructions")
    identityAuthId: Optional[str] = Field(None, description="Fallback auth id when no auth header is sent")


class RenderRequest(BaseModel):
    additionalInstructions: Optional[str] = Field(None, description="Free-text style instructions")
    preferredBackend: Optional[str] = Field(None, description="'openai' (A), 'gemini' (B) or 'auto'")
    identityAuthId: Optional[str] = Field(None, description="Fallback auth id when no auth header is sent")


# ============================================================================
# PART 4: ENDPOINTS
# ============================================================================

@app.post("/api/pdf")
async def upload_pdf_endpoint(
    file: UploadFile = File(...),
    identity_username: str = Form(default=""),
    identity_slug: str = Form(default=""),
    identity_email: str = Form(default=""),
    identity_auth_id: str = Form(default=""),
    medium_username: str = Form(default=""),
    x_user_id: Optional[str] = Header(default=None),
    pipeline: ProfilePipeline = Depends(get_pipeline),
    store: ProfileStore = Depends(get_store),
    medium: MediumClient = Depends(get_medium),
):
    """
    Extracts the PDF, structures it with the LLM and saves the profile.
    The raw text is saved even when the AI step fails.
    """
    auth_id = resolve_auth_id(x_user_id, identity_auth_id)
    logger.info("=" * 80)
    logger.info(f"🚀 NEW PDF UPLOAD (file={file.filename}, header_identity={bool(x_user_id)})")
    logger.info("=" * 80)

    # --- 1. Extract text ---
    content = await file.read()
    logger.info(f"📥 Received {len(content)} bytes")
    try:
        pdf_text = extract_text(content)
    except ExtractionError as e:
        logger.warning(f"⚠️  Rejected upload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    # --- 2. Resolve identity ---
    existing = await store.get_by_auth_id(auth_id)
    if existing:
        identity = ProfileIdentity(
            username=existing["username"],
            display_name=existing["username"],
            slug=existing["slug"],
            email=existing.get("email"),
            auth_user_id=auth_id,
        )
    else:
        fallback_slug = sanitize_slug(identity_slug.strip())
        derived = derive_profile_identity(BasicIdentity(
            auth_id=auth_id,
            username=identity_username.strip() or fallback_slug or f"user-{auth_id[-6:]}",
            email=identity_email.strip() or None,
        ))
        identity = ProfileIdentity(
            username=identity_username.strip() or derived.username,
            display_name=identity_username.strip() or derived.display_name,
            slug=fallback_slug or derived.slug,
            email=derived.email,
            auth_user_id=auth_id,
        )
    logger.info(f"👤 Identity resolved: slug={identity.slug}, existing={bool(existing)}")

    # --- 3. Optional secondary source ---
    secondary_text = await medium.fetch_summary_text(medium_username) if medium_username else None

    # --- 4. Structure with the LLM ---
    profile_data: Optional[ProfileData] = None
    try:
        profile_data = await pipeline.reformulate(pdf_text, secondary_text=secondary_text)
    except ProfileGenError as e:
        logger.error(f"❌ AI processing failed, saving raw text only: {e}")

    # --- 5. Persist ---
    record = await store.save_from_pdf(identity, pdf_text, profile_data)
    logger.info(f"✅ PDF UPLOAD COMPLETE (slug={record['slug']}, processed_with_ai={profile_data is not None})")

    owner_hint = f"?authId={auth_id}" if not x_user_id else ""
    return {
        "ok": True,
        "path": f"/{record['slug']}{owner_hint}",
        "processed_with_ai": profile_data is not None,
        "sections_count": len(profile_data.sections) if profile_data else 0,
        "profile": record,
    }


@app.get("/api/profile")
async def get_profile_endpoint(
    username: str = "",
    identityAuthId: str = "",
    x_user_id: Optional[str] = Header(default=None),
    store: ProfileStore = Depends(get_store),
):
    """Public lookup by slug, or the caller's own profile when no slug is given."""
    if username.strip():
        record = await store.get_by_slug(username.strip())
    else:
        record = await store.get_by_auth_id(resolve_auth_id(x_user_id, identityAuthId))

    if not record:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": record}


@app.post("/api/profile")
async def ensure_profile_endpoint(
    body: ProfileMetadataRequest,
    x_user_id: Optional[str] = Header(default=None),
    store: ProfileStore = Depends(get_store),
):
    """Creates or updates the caller's profile metadata (name, e-mail, slug)."""
    auth_id = resolve_auth_id(x_user_id, body.identityAuthId)
    requested_name = (body.username or "").strip()

    existing = await store.get_by_auth_id(auth_id)
    if existing:
        slug, username, email = existing["slug"], existing["username"], existing.get("email")
    else:
        derived = derive_profile_identity(BasicIdentity(
            auth_id=auth_id,
            username=requested_name or f"user-{auth_id[-6:]}",
            email=body.email,
        ))
        slug, username, email = derived.slug, derived.username, derived.email

    record = await store.ensure_metadata(
        username=requested_name or username,
        slug=slug,
        email=body.email if body.email is not None else email,
        auth_user_id=auth_id,
    )
    return {"profile": record, "identity": {"username": username, "slug": slug, "email": email}}


async def _load_profile_data(record: Dict[str, Any], pipeline: ProfilePipeline, action: str) -> ProfileData:
    """Stored JSON, or a fresh reformulation of the stored raw text."""
    profile_data = coerce_profile_data(record.get("profile_json"))
    if profile_data is not None:
        return profile_data

    if not record.get("pdf_raw"):
        raise HTTPException(status_code=400, detail="No structured data or PDF text to work from")

    logger.info(f"🔧 Rebuilding profile JSON from stored PDF text ({len(record['pdf_raw'])} characters)")
    try:
        return await pipeline.reformulate(record["pdf_raw"])
    except ProfileGenError as e:
        raise_for_pipeline_error(e, action)


@app.post("/api/profile/augment")
async def augment_profile_endpoint(
    body: AugmentRequest,
    x_user_id: Optional[str] = Header(default=None),
    pipeline: ProfilePipeline = Depends(get_pipeline),
    store: ProfileStore = Depends(get_store),
):
    auth_id = resolve_auth_id(x_user_id, body.identityAuthId)
    instructions = body.instructions.strip()
    if not instructions:
        raise HTTPException(status_code=400, detail="instructions is required")

    record = await store.get_by_auth_id(auth_id)
    if not record:
        raise HTTPException(status_code=404, detail="No profile exists for this user")

    logger.info(f"🧩 [AUGMENT] slug={record['slug']}, instructions={len(instructions)} characters")
    current = await _load_profile_data(record, pipeline, "augmenting the profile")
    try:
        updated = await pipeline.augment(current, instructions)
    except (ProfileGenError, ValueError) as e:
        logger.error(f"❌ [AUGMENT] Failed: {e}")
        raise_for_pipeline_error(e, "augmenting the profile")

    try:
        saved = await store.update_json(record["slug"], updated)
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="No profile exists for this user")
    return profile_response(saved, profile=updated.model_dump())


@app.post("/api/profile/render")
async def render_profile_endpoint(
    body: RenderRequest,
    x_user_id: Optional[str] = Header(default=None),
    pipeline: ProfilePipeline = Depends(get_pipeline),
    store: ProfileStore = Depends(get_store),
):
    auth_id = resolve_auth_id(x_user_id, body.identityAuthId)
    if body.preferredBackend is not None:
        try:
            normalize_backend(body.preferredBackend)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    record = await store.get_by_auth_id(auth_id)
    if not record:
        raise HTTPException(status_code=404, detail="No profile exists for this user")

    profile_data = await _load_profile_data(record, pipeline, "rendering the profile")
    if coerce_profile_data(record.get("profile_json")) is None:
        await store.update_json(record["slug"], profile_data, pdf_text=record.get("pdf_raw"))

    options = RenderOptions(
        username=record.get("username"),
        additional_instructions=(body.additionalInstructions or "").strip() or None,
        preferred_backend=body.preferredBackend,
        previous_markup=record.get("profile_html"),
    )
    logger.info(f"🎨 [RENDER] slug={record['slug']}, revise={bool(options.previous_markup)}")
    try:
        markup = await pipeline.render(profile_data, options)
    except ProfileGenError as e:
        logger.error(f"❌ [RENDER] Every render backend failed: {e}")
        raise_for_pipeline_error(e, "rendering the profile")

    saved = await store.update_html(record["slug"], markup)
    return profile_response(saved, html=markup)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


PAGE_SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>[Insert Title Here]</title>
<script src="https://cdn.tailwindcss.com"></script>
</head>
<body>
[Insert Fragment Here]
</body>
</html>"""

PLACEHOLDER_FRAGMENT = """<main class="min-h-screen bg-slate-50 text-slate-800 flex items-center justify-center">
<p class="text-lg">[Insert Message Here]</p>
</main>"""


@app.get("/{slug}", response_class=HTMLResponse)
async def public_profile_page(slug: str, store: ProfileStore = Depends(get_store)):
    """Serves the rendered fragment inside a minimal page shell."""
    record = await store.get_by_slug(slug)
    if not record:
        raise HTTPException(status_code=404, detail="Profile not found")

    title = html.escape(record.get("username") or slug)
    fragment = record.get("profile_html")
    if not fragment:
        fragment = PLACEHOLDER_FRAGMENT.replace(
            "[Insert Message Here]", f"{title} has not published a page yet."
        )
    return HTMLResponse(fill_template(PAGE_SHELL, {"[Insert Title Here]": title, "[Insert Fragment Here]": fragment}))


# ============================================================================
# PART 5: UVICORN RUNNER
# ============================================================================

if __name__ == "__main__":
    settings: Settings = get_settings()
    logger.info("🚀 Starting Uvicorn server...")
    logger.info(f"📍 API will be available at: http://0.0.0.0:8000 (env={settings.app_env})")
    logger.info(f"📚 API documentation at: http://0.0.0.0:8000/docs")

    # Suppress uvicorn access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    uvicorn.run(app, host="0.0.0.0", port=8000, access_log=False)
