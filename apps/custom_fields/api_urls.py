from django.urls import path
from .api_views import (
    FieldValueAPIView,
    GroupFormAPIView,
    GroupValuesAPIView,
)

app_name = "custom_fields"

urlpatterns = [
    # GET: values, POST: validate + save, DELETE: remove all values for the record
    path(
        "custom-fields/<slug:group_slug>/<int:model_id>/",
        GroupValuesAPIView.as_view(),
        name="group-values",
    ),
    # GET: rendered form inputs
    path(
        "custom-fields/<slug:group_slug>/<int:model_id>/form/",
        GroupFormAPIView.as_view(),
        name="group-form",
    ),
    # GET: one value, PUT: set it
    path(
        "custom-fields/<slug:group_slug>/<slug:field_slug>/<int:model_id>/value/",
        FieldValueAPIView.as_view(),
        name="field-value",
    ),
]
