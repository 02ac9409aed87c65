"""
File intake pipeline: validate, name, and commit uploaded files.

Modules:
- settings: Centralized configuration
- models: UploadSpec, RawSubmission, outcome variants, BatchResult
- errors: Failure taxonomy
- transport: Transfer status mapping, Streamlit spooling, form helpers
- mime_validation: Extension allow-list and MIME cross-check
- files: Name sanitization, path containment, collision handling
- storage: History copies and atomic commit
- orchestrator: Per-item pipeline and batch processing
- audit_log: Allowlist-only audit events
- logging_config: Logging setup
"""
