from fastapi import APIRouter, Depends

from ..domain.catalog import LORA, ModelCatalog
from ..domain.models import Session
from . import deps
from .schemas import LoraInfo, LoraList

router = APIRouter()


@router.get("/models/loras", response_model=LoraList)
def list_loras(
    session: Session = Depends(deps.require_session),
    catalog: ModelCatalog = Depends(deps.get_catalog),
) -> LoraList:
    """
    Installed LoRAs with the metadata the prompt UI shows.
    Usage counts are not tracked yet and are always 0.
    """
    handler = catalog.handler(LORA)
    if handler is None:
        return LoraList(loras=[])

    return LoraList(
        loras=[
            LoraInfo(
                id=entry.name,
                title=entry.title or entry.name,
                author=entry.author,
                triggerPhrase=entry.trigger_phrase,
                description=entry.description,
                preview=entry.preview_image,
                tags=entry.tags,
                license=entry.license,
            )
            for entry in handler
        ]
    )
