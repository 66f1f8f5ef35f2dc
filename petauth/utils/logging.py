"""애플리케이션 로깅 설정.

Application logging setup. Loggers live under the `petauth.*` namespace;
request-level logs go to Axiom through the middleware.
"""

import logging


def setup_logging(level: str = "INFO") -> None:
    resolved: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for name in ("petauth", "uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(resolved)
