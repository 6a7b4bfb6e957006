import logging

logger = logging.getLogger("synthrace")
logger.setLevel(logging.INFO)

if not logger.handlers:
    h = logging.StreamHandler()
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)

PREVIEW_CHARS = 500


def configure(cfg: dict | None) -> None:
    """Apply the ``pipeline.log_preview_chars`` setting of the loaded config."""
    global PREVIEW_CHARS
    section = (cfg or {}).get("pipeline") or {}
    if section.get("log_preview_chars") is not None:
        PREVIEW_CHARS = int(section["log_preview_chars"])


def preview_text(raw: str | None, limit: int | None = None) -> str:
    """Return a single-line head of untrusted *raw* text for log lines."""
    head = (raw or "")[: PREVIEW_CHARS if limit is None else limit]
    return head.replace("\n", "\\n")


def log_step_failure(step: str, token: int | None, exc: Exception) -> None:
    logger.error(
        "step_failed step=%s token=%s kind=%s error=%s",
        step,
        token,
        getattr(exc, "kind", exc.__class__.__name__),
        exc,
    )


def log_malformed_response(cleaned: str, exc: Exception) -> None:
    logger.warning(
        "malformed_response error=%s head=%r",
        exc,
        preview_text(cleaned),
    )
