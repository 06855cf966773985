import os

# quiet console logging and no logs/ directory during tests
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from fastapi import FastAPI

from coverfit.middleware.error_handlers import ExceptionHandlerMiddleware
from coverfit.models.models import Criterion, ParsedJobDescription


def build_app(router, prefix: str = "/api") -> FastAPI:
    """Bare app around one router, with the JSON error envelope."""
    app = FastAPI()
    app.add_middleware(ExceptionHandlerMiddleware)
    app.include_router(router, prefix=prefix)
    return app


@pytest.fixture
def parsed_job():
    return ParsedJobDescription(
        responsibilities=[
            Criterion(summary="API design", description="Design and maintain REST APIs"),
            Criterion(summary="Code review", description="Review pull requests from teammates"),
        ],
        companyCulture=[
            Criterion(summary="Remote first", description="Work well in a distributed team"),
        ],
        technicalSkills=[
            Criterion(summary="Python", description="5+ years of Python"),
            Criterion(summary="MongoDB", description="Experience running MongoDB"),
        ],
    )
