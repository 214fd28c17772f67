import logging

from django.utils.module_loading import import_string
from rest_framework import status
from rest_framework.permissions import BasePermission, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .conf import get_setting
from .models import DataGroup
from .service import CustomFields

logger = logging.getLogger(__name__)


# Error codes for machine-parseable responses
class CustomFieldErrorCode:
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    FIELD_NOT_FOUND = "FIELD_NOT_FOUND"
    VALUE_NOT_FOUND = "VALUE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    FIELD_LOCKED = "FIELD_LOCKED"
    SAVE_FAILED = "SAVE_FAILED"
    MISSING_PARAMETER = "MISSING_PARAMETER"


def error_response(error_code, error, http_status, **extra):
    return Response({
        "success": False,
        "error_code": error_code,
        "error": error,
        **extra,
    }, status=http_status)


def group_not_found():
    return error_response(
        CustomFieldErrorCode.GROUP_NOT_FOUND,
        "Custom field group not found",
        status.HTTP_404_NOT_FOUND,
    )


class IsRecordOwner(BasePermission):
    """
    Staff may access any record. Other users only reach records the
    configured OWNER_RESOLVER says they own; with no resolver they get none.
    """

    message = "You do not have access to this record."

    def has_permission(self, request, view):
        if request.user.is_staff:
            return True

        resolver_path = get_setting("OWNER_RESOLVER")
        if not resolver_path:
            return False

        resolver = import_string(resolver_path)
        model_id = view.kwargs.get("model_id")
        group_slug = view.kwargs.get("group_slug")
        if resolver(request.user, group_slug, model_id):
            return True

        logger.warning(
            f"User {request.user.pk} denied access to {group_slug} values of model {model_id}"
        )
        return False


class CustomFieldPermissionMixin:
    """Reads and form posts need a login and record ownership; deletes and direct writes need staff."""

    staff_methods = ("DELETE", "PUT")

    def get_permissions(self):
        if self.request.method in self.staff_methods:
            return [IsAdminUser()]
        return [IsAuthenticated(), IsRecordOwner()]

    def is_client(self, request) -> bool:
        return not request.user.is_staff


class GroupValuesAPIView(CustomFieldPermissionMixin, APIView):
    """GET: values of a group for a record, POST: validate and save, DELETE: remove."""

    def get(self, request, group_slug, model_id):
        service = CustomFields()
        snapshot = service.get_group(group_slug, model_id, self.is_client(request))
        if snapshot is None:
            return group_not_found()

        data = snapshot.to_dict()
        for slug, value in service.decrypted_values(snapshot).items():
            data["fields"][slug]["value"]["value"] = value

        return Response({"success": True, "group": data})

    def post(self, request, group_slug, model_id):
        if not DataGroup.objects.filter(slug=group_slug).exists():
            return group_not_found()

        service = CustomFields()
        is_client = self.is_client(request)

        outcome = service.validate_custom_fields(group_slug, model_id, is_client, request.data)
        if not outcome.result:
            return error_response(
                CustomFieldErrorCode.VALIDATION_FAILED,
                "Validation failed",
                status.HTTP_400_BAD_REQUEST,
                errors=outcome.errors,
            )

        if not service.save_custom_fields(group_slug, model_id, is_client, request.data):
            return error_response(
                CustomFieldErrorCode.SAVE_FAILED,
                "Failed to save custom fields",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"success": True})

    def delete(self, request, group_slug, model_id):
        if not DataGroup.objects.filter(slug=group_slug).exists():
            return group_not_found()

        try:
            CustomFields().delete_custom_field_values(group_slug, model_id)
        except Exception:
            logger.exception(f"Failed to delete custom field values of {group_slug} for model {model_id}")
            return error_response(
                CustomFieldErrorCode.SAVE_FAILED,
                "Failed to delete custom field values",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"success": True})


class GroupFormAPIView(CustomFieldPermissionMixin, APIView):
    def get(self, request, group_slug, model_id):
        if not DataGroup.objects.filter(slug=group_slug).exists():
            return group_not_found()

        html = CustomFields().generate_form(group_slug, model_id, self.is_client(request))
        return Response({"success": True, "html": str(html)})


class FieldValueAPIView(CustomFieldPermissionMixin, APIView):
    """GET: one decrypted value, PUT: set it."""

    def get(self, request, group_slug, field_slug, model_id):
        service = CustomFields()
        field = service.find_field(group_slug, field_slug)
        if field is None or (field.is_staff_only and self.is_client(request)):
            return error_response(
                CustomFieldErrorCode.FIELD_NOT_FOUND,
                "Custom field not found",
                status.HTTP_404_NOT_FOUND,
            )

        value = service.get_field_value(group_slug, field_slug, model_id)
        if value is None:
            return error_response(
                CustomFieldErrorCode.VALUE_NOT_FOUND,
                "No value stored for this record",
                status.HTTP_404_NOT_FOUND,
            )

        return Response({"success": True, "value": value})

    def put(self, request, group_slug, field_slug, model_id):
        data = request.data or {}
        if "value" not in data:
            return error_response(
                CustomFieldErrorCode.MISSING_PARAMETER,
                "Missing 'value'",
                status.HTTP_400_BAD_REQUEST,
            )

        service = CustomFields()
        field = service.find_field(group_slug, field_slug)
        if field is None:
            return error_response(
                CustomFieldErrorCode.FIELD_NOT_FOUND,
                "Custom field not found",
                status.HTTP_404_NOT_FOUND,
            )

        if service.is_locked(field.is_editable):
            return error_response(
                CustomFieldErrorCode.FIELD_LOCKED,
                "Field is not editable",
                status.HTTP_403_FORBIDDEN,
            )

        value = data["value"]
        if not service.set_field_value("" if value is None else str(value), group_slug, field_slug, model_id):
            return error_response(
                CustomFieldErrorCode.SAVE_FAILED,
                "Failed to save custom field value",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"success": True, "value": service.get_field_value(group_slug, field_slug, model_id)})
