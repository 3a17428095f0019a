from fastapi import APIRouter, Depends

from stripbooth.api.dependencies import get_layout_catalog, get_theme_catalog
from stripbooth.models.layout import Layout, Theme
from stripbooth.services.catalog import Catalog

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/layouts")
async def list_layouts(layouts: Catalog = Depends(get_layout_catalog)):
    return {"default": layouts.default_id, "layouts": [layout.model_dump(mode="json") for layout in layouts.all()]}


@router.get("/layouts/{layout_id}", response_model=Layout)
async def get_layout(layout_id: str, layouts: Catalog = Depends(get_layout_catalog)):
    return layouts.resolve(layout_id)


@router.get("/themes")
async def list_themes(themes: Catalog = Depends(get_theme_catalog)):
    return {"default": themes.default_id, "themes": [theme.model_dump(mode="json") for theme in themes.all()]}


@router.get("/themes/{theme_id}", response_model=Theme)
async def get_theme(theme_id: str, themes: Catalog = Depends(get_theme_catalog)):
    return themes.resolve(theme_id)
