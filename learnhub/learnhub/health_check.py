"""
Health Check Views

Liveness of the API process and reachability of the database that holds
attempts and progress records.
"""

import logging

from django.apps import apps
from django.db import DatabaseError, connection
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

logger = logging.getLogger(__name__)

ENGINE_APPS = ('accounts', 'instructor', 'trainee')


class HealthCheckService:
    """Service for performing health checks on system components."""

    @staticmethod
    def check_database():
        """
        Check database connectivity with a trivial query.

        Returns:
            dict: Health status with details
        """
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            return {
                'status': 'healthy',
                'database': 'connected',
                'vendor': connection.vendor,
            }
        except DatabaseError as e:
            logger.error(f"[HEALTH] Database check failed: {e}")
            return {
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': str(e),
            }

    @staticmethod
    def check_tables():
        """
        Verify that every table of the engine apps exists.

        Returns:
            dict: Table status with the missing table names
        """
        required = {
            model._meta.db_table
            for app_label in ENGINE_APPS
            for model in apps.get_app_config(app_label).get_models()
        }
        try:
            existing = set(connection.introspection.table_names())
        except DatabaseError as e:
            logger.error(f"[HEALTH] Table check failed: {e}")
            return {'status': 'unhealthy', 'error': str(e)}

        missing = sorted(required - existing)
        return {
            'status': 'healthy' if not missing else 'degraded',
            'total_required': len(required),
            'missing': missing,
        }


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """Simple health check endpoint: 200 when the database answers, 503 otherwise."""
    health = HealthCheckService.check_database()
    health['timestamp'] = timezone.now().isoformat()

    if health['status'] == 'healthy':
        return Response(health, status=status.HTTP_200_OK)
    return Response(health, status=status.HTTP_503_SERVICE_UNAVAILABLE)


@api_view(['GET'])
@permission_classes([AllowAny])
def database_status(request):
    """
    Database status endpoint.

    Returns:
        Response: JSON with database and table information
    """
    db_status = HealthCheckService.check_database()
    table_status = (
        HealthCheckService.check_tables() if db_status['status'] == 'healthy'
        else {'status': 'unknown'}
    )

    response_data = {
        'database': db_status,
        'tables': table_status,
    }

    if db_status['status'] == 'healthy' and table_status['status'] == 'healthy':
        return Response(response_data, status=status.HTTP_200_OK)
    return Response(response_data, status=status.HTTP_503_SERVICE_UNAVAILABLE)
