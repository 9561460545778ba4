import logging
from datetime import datetime
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from uavguard import db, SEQUENCER_KEY
from uavguard.errors import PersistenceError, UAVGuardError
from uavguard.models import Analysis, STATUS_FAILED, STATUS_PROCESSING
from uavguard.queries import get_analysis_detail, get_dashboard_stats, list_analyses
from uavguard.utils import measure_upload, parse_limit, validate_upload

# Create blueprint for API routes
api_bp = Blueprint('api', __name__, url_prefix='/api')

# Setup logger
logger = logging.getLogger(__name__)


def error_response(error):
    """Render a UAVGuardError as the standard failure envelope."""
    if error.status_code >= 500:
        logger.error(error.message)
    return jsonify({
        'success': False,
        'error': error.message
    }), error.status_code


@api_bp.route('/analyses', methods=['GET'])
def get_analyses():
    """Endpoint to list analyses, newest first, optionally filtered by status."""
    try:
        limit = parse_limit(
            request.args.get('limit'),
            current_app.config['DEFAULT_LIST_LIMIT'],
            current_app.config['MAX_LIST_LIMIT'],
        )
        status = request.args.get('status') or None

        analyses = list_analyses(db.session, limit, status)

        return jsonify({
            'success': True,
            'analyses': analyses
        })

    except UAVGuardError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error fetching analyses: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'Failed to fetch analyses'
        }), 500


@api_bp.route('/analyses', methods=['POST'])
def create_analysis():
    """
    Endpoint for uploading a capture file and starting its analysis.

    Expects multipart form data with a ``file`` field holding a .pcap capture.
    The analysis runs in the background; poll ``/api/analyses/<id>`` or listen
    for ``analysis_progress`` Socket.IO events to follow it.
    """
    try:
        upload = request.files.get('file')

        # Validate the uploaded file
        validation_result = validate_upload(upload, current_app.config['ALLOWED_EXTENSIONS'])
        if not validation_result['valid']:
            return jsonify({
                'success': False,
                'error': validation_result['error']
            }), 400

        analysis = Analysis(
            filename=upload.filename,
            file_size=measure_upload(upload),
            upload_timestamp=datetime.utcnow(),
            status=STATUS_PROCESSING,
            progress=0
        )

        # Save to database
        try:
            db.session.add(analysis)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to create analysis: {str(e)}") from e

        logger.info(f"Created analysis {analysis.id} for {analysis.filename} ({analysis.file_size} bytes)")
        result = analysis.to_dict()

        # Simulated IDS pipeline; the request does not wait for it
        try:
            current_app.extensions[SEQUENCER_KEY].start(analysis.id)
        except Exception:
            analysis.status = STATUS_FAILED
            analysis.error_message = 'Analysis could not be started'
            db.session.commit()
            raise

        return jsonify({
            'success': True,
            'analysis': result
        })

    except UAVGuardError as e:
        return error_response(e)
    except HTTPException:
        # Oversized uploads surface here when request.files is parsed
        raise
    except Exception as e:
        logger.error(f"Error creating analysis: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'Failed to create analysis'
        }), 500


@api_bp.route('/analyses/<int:analysis_id>', methods=['GET'])
def get_analysis(analysis_id):
    """Endpoint to get an analysis with its alerts, drone nodes and metrics."""
    try:
        detail = get_analysis_detail(db.session, analysis_id)
        return jsonify({
            'success': True,
            **detail
        })

    except UAVGuardError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error fetching analysis details: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'Failed to fetch analysis details'
        }), 500


@api_bp.route('/dashboard/stats', methods=['GET'])
def dashboard_stats():
    """Endpoint to get the aggregate dashboard statistics."""
    try:
        stats = get_dashboard_stats(db.session)
        return jsonify({
            'success': True,
            **stats
        })

    except UAVGuardError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error fetching dashboard stats: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'Failed to fetch dashboard statistics'
        }), 500


@api_bp.route('/health', methods=['GET'])
def health_check():
    """Simple health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat() + 'Z'
    })


@api_bp.app_errorhandler(413)
def upload_too_large(error):
    return jsonify({
        'success': False,
        'error': 'Uploaded file is too large'
    }), 413
