"""Identifier codec router.

Endpoints:
    GET  /api/identifiers/{code}     Decode and validate a panel code
    POST /api/identifiers/generate   Build a code from its fields
"""

from fastapi import APIRouter
from pydantic import BaseModel

from app.schemas.panel import IdentifierOut
from app.utils.barcode import decode_identifier, generate_identifier

router = APIRouter()


class GenerateRequest(BaseModel):
    panel_type: int
    sequence: int
    year: int | None = None
    frame_type: str = "silver"
    backsheet_type: str = "white"


def _out(identifier) -> IdentifierOut:
    return IdentifierOut(
        code=identifier.code,
        company_tag=identifier.company_tag,
        year=identifier.year,
        frame_type=identifier.frame_type,
        backsheet_type=identifier.backsheet_type,
        panel_type=identifier.panel_type,
        sequence=identifier.sequence,
        line=identifier.line,
    )


@router.get("/{code}", response_model=IdentifierOut)
async def decode(code: str):
    """Decode a code; a malformed code names the first failing field."""
    return _out(decode_identifier(code))


@router.post("/generate", response_model=IdentifierOut)
async def generate(body: GenerateRequest):
    code = generate_identifier(
        panel_type=body.panel_type,
        sequence=body.sequence,
        year=body.year,
        frame_type=body.frame_type,
        backsheet_type=body.backsheet_type,
    )
    return _out(decode_identifier(code))
