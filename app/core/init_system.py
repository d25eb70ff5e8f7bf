import logging
from app.database import session_scope
from app.models.rating_option import RatingOption
from app.services.rating_options import fallback_qualitative_options, fallback_rating_options

logger = logging.getLogger(__name__)


def default_rating_options():
    """1.00 / 1.25 / 1.50 for both period types plus the qualitative labels."""
    return (
        fallback_rating_options("quarterly")
        + fallback_rating_options("yearly")
        + fallback_qualitative_options()
    )


def init_system_data():
    """
    Seeds the default rating scale when no rating options are configured yet.
    Failures are logged and never stop the application from starting.
    """
    try:
        with session_scope() as db:
            option_count = db.query(RatingOption).count()
            if option_count:
                logger.info(f"Rating scale check: {option_count} rating option(s) configured.")
                return
            defaults = default_rating_options()
            db.add_all(RatingOption(**option.to_dict()) for option in defaults)
            logger.info(f"Seeded {len(defaults)} default rating options.")
    except Exception as e:
        logger.error(f"Could not seed rating options: {e}", exc_info=True)
