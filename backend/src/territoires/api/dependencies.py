"""Service accessors for route handlers.

Services are built once in the application lifespan and stored on
``app.state``; routes reach them through these dependencies so tests
can swap in their own instances.
"""

from typing import Annotated

from fastapi import Depends, Request

from ..admission import AdmissionController
from ..batch import BatchCoordinator
from ..matching import TerritoireMatcher


def get_matcher(request: Request) -> TerritoireMatcher:
    return request.app.state.matcher


def get_coordinator(request: Request) -> BatchCoordinator:
    return request.app.state.coordinator


def get_admission(request: Request) -> AdmissionController:
    return request.app.state.admission


Matcher = Annotated[TerritoireMatcher, Depends(get_matcher)]
Coordinator = Annotated[BatchCoordinator, Depends(get_coordinator)]
Admission = Annotated[AdmissionController, Depends(get_admission)]
