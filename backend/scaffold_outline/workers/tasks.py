"""
Celery Tasks — drawing processing off the request thread.

Both tasks return ``CadProcessingResult.model_dump()`` so results stay
JSON-serializable; expected drawing failures come back as
``success=False`` rather than task errors.
"""
import logging

from scaffold_outline.workers.celery_app import celery_app

logger = logging.getLogger("scaffold-outline.celery")


@celery_app.task(bind=True, name="tasks.process_cad_geometry")
def process_cad_geometry(self, file_path: str, drawing_id: str = ""):
    """Vector path: DXF → cleaned segments → outer boundary → walls."""
    from scaffold_outline.services.cad_pipeline import CadProcessingPipeline

    self.update_state(state="PROGRESS", meta={"step": "Processing CAD geometry", "pct": 10})
    try:
        result = CadProcessingPipeline().process(file_path, drawing_id=drawing_id)
        self.update_state(state="PROGRESS", meta={"step": "Complete", "pct": 100})
        return {"drawing_id": drawing_id, **result.model_dump()}
    except Exception as e:
        logger.error(f"CAD processing failed for drawing {drawing_id}: {e}")
        raise


@celery_app.task(bind=True, name="tasks.detect_drawing_outline")
def detect_drawing_outline(self, file_path: str, width_mm: float, height_mm: float, drawing_id: str = ""):
    """Raster path: image → outline polygon → walls at the given real-world size."""
    from scaffold_outline.services.cad_pipeline import CadProcessingPipeline

    self.update_state(state="PROGRESS", meta={"step": "Detecting building outline", "pct": 10})
    try:
        result = CadProcessingPipeline().process_raster_outline(
            file_path, width_mm, height_mm, drawing_id=drawing_id,
        )
        self.update_state(state="PROGRESS", meta={"step": "Complete", "pct": 100})
        return {"drawing_id": drawing_id, **result.model_dump()}
    except Exception as e:
        logger.error(f"Outline detection failed for drawing {drawing_id}: {e}")
        raise
