from rest_framework import status
from rest_framework.exceptions import APIException


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class InvalidTransition(APIException):
    """Status change not allowed for the visit's current state or the actor's role."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_transition'


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have access to this visit.'
    default_code = 'forbidden'


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid'


class DependencyUnavailable(APIException):
    """A collaborator (push provider, directory or housing lookup) failed.

    Callers log and swallow this; it never fails the primary operation.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'A dependent service is unavailable.'
    default_code = 'dependency_unavailable'
