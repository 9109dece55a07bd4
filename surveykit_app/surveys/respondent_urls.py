from django.urls import path

from . import views

app_name = "respond"

# Public, unauthenticated routes for respondents
urlpatterns = [
    path("<uuid:survey_id>/", views.survey_take, name="take"),
    path("<uuid:survey_id>/contact/", views.survey_contact, name="contact"),
    path("<uuid:survey_id>/embed/", views.survey_embed, name="embed"),
]
