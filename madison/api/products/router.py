"""Product catalog maintenance endpoints."""

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from madison.api.products.schemas import ImportProductsResponse, MergeDuplicatesResponse
from madison.config.logger import app_logger
from madison.services.product_import import import_products_csv, merge_duplicate_products
from madison.utils.auth import CurrentUser, RequireAuth
from madison.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/products", tags=["products"])


@router.post("/{organization_id}/import", response_model=SuccessResponse[ImportProductsResponse])
async def import_products(
    organization_id: str,
    file: UploadFile = File(..., description="Product CSV with a header row"),
    user: CurrentUser = RequireAuth,
):
    """Upsert products from a CSV file by handle.

    Unknown headers are ignored, boolean columns accept "yes" and a bad row
    is reported in ``errors`` without stopping the import.
    """
    raw = await file.read()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file must be UTF-8 encoded")

    app_logger.info(f"Product CSV import by {user.user_id} for org={organization_id}: {file.filename}")
    try:
        result = await import_products_csv(organization_id, text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        app_logger.error(f"Product import failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Product import failed: {str(e)}",
        )

    return success_response(
        data=ImportProductsResponse(
            inserted=result.inserted,
            updated=result.updated,
            failed=result.failed,
            skipped_headers=result.skipped_headers,
            errors=result.errors,
        ),
        message=f"Imported {result.inserted + result.updated} product(s)",
    )


@router.post("/{organization_id}/merge-duplicates", response_model=SuccessResponse[MergeDuplicatesResponse])
async def merge_duplicates(
    organization_id: str,
    user: CurrentUser = RequireAuth,
):
    """Merge products that share a handle into the most complete record."""
    try:
        result = await merge_duplicate_products(organization_id)
    except Exception as e:
        app_logger.error(f"Duplicate merge failed for org={organization_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Duplicate merge failed: {str(e)}",
        )
    return success_response(
        data=MergeDuplicatesResponse(
            groups=result.groups,
            merged=result.merged,
            deleted=result.deleted,
            kept_ids=result.kept_ids,
        ),
        message=f"Merged {result.merged} duplicate product(s)",
    )
