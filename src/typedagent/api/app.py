"""
HTTP front end for a single typedagent agent.

It exposes the following endpoints:
- **GET /health** - liveness check.
- **GET /agent**  - model, input/output JSON schema and server names of the served agent.
- **POST /run**   - run the agent once: {"input": {...}}
"""

import logging
from functools import lru_cache
from typing import Any

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)
from pydantic import ValidationError

from typedagent.agent.orchestrator import (
    Agent,
    OutputSchemaError,
)
from typedagent.api.models import (
    AgentInfo,
    RunRequest,
    RunResponse,
)
from typedagent.common import (
    AnsiColors,
    colored_print,
)
from typedagent.config import settings
from typedagent.core.definition import load_agent

logger = logging.getLogger(__name__)

app = FastAPI(
    title="typedagent API", version="0.1.0", description="Typed-input, typed-output agent API"
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_agent() -> Agent:
    """Load the agent named by ``settings.AGENT_FILE`` (once)."""
    return load_agent(settings.AGENT_FILE)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/agent", response_model=AgentInfo, summary="Describe the agent")
def describe_agent(agent: Agent = Depends(get_agent)) -> AgentInfo:
    return AgentInfo(
        model=agent.model,
        input_schema=agent.input_format.model_json_schema(),
        output_schema=agent.output_format.model_json_schema(),
        servers=[s.name for s in agent.servers],
    )


@app.post("/run", response_model=RunResponse, summary="Run the agent")
def run_agent(req: RunRequest, agent: Agent = Depends(get_agent)) -> RunResponse:
    """Run the agent on *req.input* and return the typed output."""
    # Sync handler: FastAPI runs it in a worker thread, the pipeline blocks on I/O.
    try:
        result = agent.run_detailed(req.input)
    except ValidationError as exc:
        logger.info("Rejected input: %s", exc)
        raise HTTPException(
            status_code=422, detail=exc.errors(include_url=False, include_context=False)
        ) from exc
    except OutputSchemaError as exc:
        logger.error("Agent could not satisfy its output schema: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    output: Any = result.output
    return RunResponse(
        request_id=result.request_id,
        output=output.model_dump(mode="json"),
        tool_results=result.tool_results,
        used_fallback=result.used_fallback,
    )


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting typedagent API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    # Fail before binding the port if the definition is broken
    agent = get_agent()
    logger.info("Serving %r", agent)

    colored_print(f"typedagent API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "typedagent.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
