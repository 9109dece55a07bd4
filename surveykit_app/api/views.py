import logging

from django.db.models import Count
from rest_framework import permissions, serializers, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import APIException
from rest_framework.response import Response

from surveykit_app.surveys import store
from surveykit_app.surveys.editor import DraftValidationError, SurveyDraft
from surveykit_app.surveys.models import Survey, SurveyResponse
from surveykit_app.surveys.questions import dump_questions, parse_questions
from surveykit_app.surveys.store import OwnerScope, PersistenceError
from surveykit_app.surveys.views import csv_response

logger = logging.getLogger(__name__)


class PersistenceFailed(APIException):
    status_code = 500
    default_detail = "Something went wrong while saving. Please try again."
    default_code = "persistence_error"


class SurveySerializer(serializers.ModelSerializer):
    response_count = serializers.SerializerMethodField()

    class Meta:
        model = Survey
        fields = [
            "id",
            "title",
            "description",
            "questions",
            "mailerlite_group_id",
            "is_active",
            "response_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def get_response_count(self, obj) -> int:
        return getattr(obj, "response_count", None) or obj.responses.count()

    def validate_questions(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected a list of questions.")
        try:
            return dump_questions(parse_questions(value))
        except (KeyError, TypeError, ValueError, AttributeError):
            raise serializers.ValidationError("Each question needs an id and a valid type.")

    def validate(self, attrs):
        # Same save rules as the web editor, applied to the merged result
        instance = self.instance
        draft = SurveyDraft(
            title=attrs.get("title", instance.title if instance else ""),
            description=attrs.get("description", instance.description if instance else ""),
            questions=parse_questions(
                attrs.get("questions", instance.questions if instance else [])
            ),
        )
        try:
            draft.validate()
        except DraftValidationError as e:
            raise serializers.ValidationError(e.messages[0])
        if "title" in attrs:
            attrs["title"] = attrs["title"].strip()
        if "description" in attrs:
            attrs["description"] = attrs["description"].strip()
        return attrs


class SurveyResponseSerializer(serializers.ModelSerializer):
    class Meta:
        model = SurveyResponse
        fields = [
            "id",
            "responses",
            "email",
            "name",
            "mailerlite_synced",
            "created_at",
        ]
        read_only_fields = fields


class SurveyViewSet(viewsets.ModelViewSet):
    serializer_class = SurveySerializer
    permission_classes = [permissions.IsAuthenticated]

    def scope(self) -> OwnerScope:
        return OwnerScope.for_user(self.request.user)

    def get_queryset(self):
        return (
            store.owned_surveys(self.scope())
            .annotate(response_count=Count("responses"))
            .order_by("-created_at")
        )

    def perform_create(self, serializer):
        try:
            serializer.instance = store.create_survey(self.scope(), **serializer.validated_data)
        except PersistenceError as e:
            raise PersistenceFailed() from e

    def perform_update(self, serializer):
        try:
            serializer.instance = store.update_survey(
                self.scope(), serializer.instance.id, **serializer.validated_data
            )
        except PersistenceError as e:
            raise PersistenceFailed() from e

    def perform_destroy(self, instance):
        try:
            store.delete_survey(self.scope(), instance.id)
        except PersistenceError as e:
            raise PersistenceFailed() from e

    @action(detail=True, methods=["post"], url_path="toggle-active")
    def toggle_active(self, request, pk=None):
        survey = self.get_object()
        try:
            active = store.toggle_survey_active(self.scope(), survey.id)
        except PersistenceError as e:
            raise PersistenceFailed() from e
        return Response({"id": str(survey.id), "is_active": active})

    @action(detail=True, methods=["get"])
    def responses(self, request, pk=None):
        survey = self.get_object()
        rows = store.list_responses(self.scope(), survey.id)
        return Response(SurveyResponseSerializer(rows, many=True).data)

    @action(detail=True, methods=["get"])
    def export(self, request, pk=None):
        survey = self.get_object()
        return csv_response(survey, store.list_responses(self.scope(), survey.id))


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def healthcheck(request):
    return Response({"status": "ok"})
