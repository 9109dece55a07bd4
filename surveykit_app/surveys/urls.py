from django.urls import path

from . import views

app_name = "surveys"

urlpatterns = [
    path("", views.survey_list, name="list"),
    path("create/", views.survey_create, name="create"),
    path("<uuid:survey_id>/edit/", views.survey_edit, name="edit"),
    path("<uuid:survey_id>/toggle-active/", views.survey_toggle_active, name="toggle_active"),
    path("<uuid:survey_id>/delete/", views.survey_delete, name="delete"),
    path("<uuid:survey_id>/results/", views.survey_results, name="results"),
    path("<uuid:survey_id>/export.csv", views.survey_export_csv, name="export_csv"),
]
