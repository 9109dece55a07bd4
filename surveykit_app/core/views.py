import logging

from django.contrib import messages
from django.contrib.auth import login
from django.http import HttpResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_http_methods

from .forms import SignupForm

logger = logging.getLogger(__name__)


def home(request):
    if request.user.is_authenticated:
        return redirect("surveys:list")
    return render(request, "core/home.html")


def healthz(request):
    """Lightweight health endpoint for load balancers and readiness probes.
    Returns 200 OK without auth or redirects.
    """
    return HttpResponse("ok", content_type="text/plain")


@require_http_methods(["GET", "POST"])
def signup(request):
    if request.user.is_authenticated:
        return redirect("surveys:list")
    if request.method == "POST":
        form = SignupForm(request.POST)
        if form.is_valid():
            user = form.save()
            login(request, user, backend="django.contrib.auth.backends.ModelBackend")
            logger.info(f"New account created: {user.username}")
            messages.success(request, "Welcome! Your account is ready.")
            return redirect("surveys:list")
    else:
        form = SignupForm()
    return render(request, "registration/signup.html", {"form": form})
