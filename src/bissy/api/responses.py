"""Response classes with the content types clients expect."""

from __future__ import annotations

from fastapi.responses import JSONResponse, Response


class UTF8JSONResponse(JSONResponse):
    media_type = "application/json; charset=UTF-8"


class CSVResponse(Response):
    media_type = "text/csv"
