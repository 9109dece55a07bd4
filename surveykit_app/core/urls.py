from django.urls import path

from . import views

app_name = "core"

urlpatterns = [
    path("home", views.home, name="home"),
    path("healthz", views.healthz, name="healthz"),
    path("signup/", views.signup, name="signup"),
]
