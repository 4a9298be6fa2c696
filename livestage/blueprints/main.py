"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError
from livestage.database import ping

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        if ping():
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'message': 'Database connection successful'
            }), 200
        return jsonify({
            'status': 'unhealthy',
            'database': 'error',
            'message': 'Unexpected query result'
        }), 500

    except SQLAlchemyError as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
            'message': 'Failed to connect to database'
        }), 500


@main_bp.route('/health/pubsub')
def health_pubsub():
    """
    Pub/Sub health check endpoint.

    Returns:
        200: OK or Degraded

    Note:
        This endpoint NEVER returns 500. Without Redis the state is still
        saved; open views just stop receiving live pushes.
    """
    from livestage.services.pubsub_service import get_pubsub
    pubsub = get_pubsub()

    if pubsub.is_available():
        return jsonify({
            'status': 'ok',
            'pubsub': 'connected',
            'redis': 'healthy',
            'message': 'Live updates are working'
        }), 200

    return jsonify({
        'status': 'degraded',
        'pubsub': 'disconnected',
        'redis': 'unavailable',
        'message': 'Live updates disabled, changes are still saved'
    }), 200
