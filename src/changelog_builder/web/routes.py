"""HTTP route handlers for the changelog builder API."""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from changelog_builder import __version__
from changelog_builder.config import Config, config_exists, load_config
from changelog_builder.exceptions import (
    ChangelogError,
    ConfigNotFoundError,
    InvalidConfigError,
    ReportCancelledError,
    UpstreamError,
    ValidationError,
)
from changelog_builder.orchestrator import (
    generate_report,
    parse_report_request,
    validate_request,
)
from changelog_builder.report import report_to_dict

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)


def _load_app_config() -> Config:
    """Load configuration, mapping failures to the changelog exception tree."""
    if not config_exists():
        raise ConfigNotFoundError(
            "Configuration not found. Create ~/.changelog-builder/config.toml to set up."
        )
    try:
        return load_config()
    except (FileNotFoundError, ValueError) as e:
        raise InvalidConfigError(str(e))


@bp.route("/meta/health")
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "Healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    })


@bp.route("/meta/repos")
def repos():
    """Return the configured repositories and the default release branch."""
    try:
        config = _load_app_config()
    except (ConfigNotFoundError, InvalidConfigError) as e:
        return jsonify({"error": str(e)}), 503

    logger.debug(
        "Returning %d repositories with default branch %s",
        len(config.repositories), config.default_release_branch,
    )
    return jsonify({
        "repos": [
            {"projectKey": r.project_key, "slug": r.slug} for r in config.repositories
        ],
        "defaultReleaseBranch": config.default_release_branch,
    })


@bp.route("/report/build", methods=["POST"])
def build_report():
    """Generate a changelog report for the requested repositories and window."""
    payload = request.get_json(silent=True)

    try:
        report_request = parse_report_request(payload)
        logger.info(
            "Received changelog build request for %s with %d repos",
            report_request.release_branch, len(report_request.repos),
        )
        validate_request(report_request)
        config = _load_app_config()
        report = generate_report(report_request, config)
    except ValidationError as e:
        logger.warning("Invalid report request: %s", e)
        return jsonify({"error": "Invalid request", "details": e.errors}), 400
    except (ConfigNotFoundError, InvalidConfigError) as e:
        return jsonify({"error": str(e)}), 503
    except ReportCancelledError as e:
        return jsonify({"error": str(e)}), 503
    except UpstreamError as e:
        return jsonify({
            "error": "An error occurred while generating the changelog report",
            "detail": str(e),
            "stage": e.stage,
        }), 500
    except ChangelogError as e:
        logger.error("Error generating changelog report", exc_info=True)
        return jsonify({
            "error": "An error occurred while generating the changelog report",
            "detail": str(e),
        }), 500

    logger.info("Generated changelog with %d stories", len(report.stories))
    return jsonify(report_to_dict(report))
