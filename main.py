"""
Upload page - send a document and an optional image through the intake pipeline.

Each field is processed independently: a rejected image never blocks the
document, and the summary reports "N of M" like the batch result does.
"""

import uuid

import streamlit as st
from dotenv import load_dotenv

load_dotenv()

from intake.audit_log import generate_request_id  # noqa: E402
from intake.logging_config import setup_logging  # noqa: E402
from intake.mime_validation import DOCUMENT_EXTENSIONS, IMAGE_EXTENSIONS  # noqa: E402
from intake.models import UploadFailure, UploadSkipped, UploadSpec  # noqa: E402
from intake.orchestrator import UploadOrchestrator  # noqa: E402
from intake.settings import settings  # noqa: E402
from intake.transport import file_uploader_types, spool_upload  # noqa: E402

setup_logging()

FIELDS = {
    "document": ("Document", DOCUMENT_EXTENSIONS, True),
    "image": ("Image (optionnelle)", IMAGE_EXTENSIONS, False),
}

st.set_page_config(page_title="Dépôt de fichiers", page_icon="📥", layout="centered")
st.title("📥 Dépôt de fichiers")

with st.sidebar:
    replace_existing = st.checkbox("Remplacer les fichiers existants", value=False)
    keep_history = st.checkbox("Conserver une copie horodatée", value=False)
    rename_to = st.text_input("Renommer le document (optionnel)", value="")
    st.caption(f"Dossier: {settings.upload_dir}")
    st.caption(f"Taille max: {settings.max_upload_bytes // 1024 // 1024} MB")

if "upload_summary" in st.session_state:
    st.success(st.session_state.pop("upload_summary"))

# Key changes after a successful batch to clear the widgets
upload_key = st.session_state.get("upload_key", "uploader_0")

uploads = {}
for field_key, (label, extensions, _required) in FIELDS.items():
    uploads[field_key] = st.file_uploader(
        label,
        type=file_uploader_types(extensions),
        key=f"{upload_key}_{field_key}",
    )

if st.button("Envoyer", type="primary", use_container_width=True):
    request_id = generate_request_id()
    settings.spool_dir.mkdir(parents=True, exist_ok=True)

    submissions = {
        field_key: spool_upload(uploaded, settings.spool_dir, settings.max_upload_bytes)
        for field_key, uploaded in uploads.items()
        if uploaded is not None
    }
    specs = [
        UploadSpec(
            field_key=field_key,
            target_dir=settings.upload_dir / field_key,
            allowed_extensions=extensions,
            force_file_name=(rename_to or None) if field_key == "document" else None,
            replace_existing=replace_existing,
            keep_history=keep_history,
            required=required,
        )
        for field_key, (_label, extensions, required) in FIELDS.items()
    ]

    result = UploadOrchestrator().process_batch(specs, submissions, request_id=request_id)

    for outcome in result.outcomes:
        label = FIELDS[outcome.field_key][0]
        if isinstance(outcome, UploadFailure):
            st.error(f"❌ {label}: {outcome.message}")
        elif isinstance(outcome, UploadSkipped):
            st.info(f"{label}: non envoyé")
        else:
            st.write(f"✅ {label}: `{outcome.file_name}`")

    if result.failed_count == 0:
        st.session_state["upload_summary"] = (
            f"✅ {result.succeeded_count}/{result.total} champ(s) traité(s)"
        )
        st.session_state["upload_key"] = f"uploader_{uuid.uuid4().hex[:8]}"
        st.rerun()
    else:
        st.warning(f"{result.succeeded_count}/{result.total} champ(s) traité(s)")
