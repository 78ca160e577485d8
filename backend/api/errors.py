from contextlib import contextmanager

from fastapi import HTTPException

from services.errors import InvalidInputError, NotFoundError


@contextmanager
def service_errors():
    """Translate service-layer failures into HTTP responses."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
