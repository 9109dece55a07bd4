from __future__ import annotations

import logging
from typing import Any

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.http import HttpRequest, HttpResponse, QueryDict
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils.http import content_disposition_header
from django.views.decorators.clickjacking import xframe_options_exempt
from django.views.decorators.http import require_http_methods, require_POST
from django_ratelimit.decorators import ratelimit

from surveykit_app.integrations.store import get_token

from . import store
from .editor import (
    DraftValidationError,
    SurveyDraft,
    discard_draft,
    load_draft,
    session_key,
    store_draft,
)
from .export import build_export_rows, export_filename, render_csv
from .models import Survey
from .questions import OPTION_TYPES, QuestionType, answer_for
from .runtime import (
    AnswerRequired,
    ContactInvalid,
    InvalidTransition,
    RunState,
    SurveyRun,
)
from .store import OwnerScope, PersistenceError

logger = logging.getLogger(__name__)

GENERIC_SAVE_ERROR = "Something went wrong while saving. Please try again."


def _scope(request: HttpRequest) -> OwnerScope:
    return OwnerScope.for_user(request.user)


# -------------------- Dashboard --------------------


@login_required
def survey_list(request: HttpRequest) -> HttpResponse:
    surveys = store.list_surveys(_scope(request))
    return render(request, "surveys/list.html", {"surveys": surveys})


@login_required
@require_POST
def survey_toggle_active(request: HttpRequest, survey_id) -> HttpResponse:
    scope = _scope(request)
    try:
        active = store.toggle_survey_active(scope, survey_id)
    except PersistenceError:
        messages.error(request, "Could not change the survey status. Please try again.")
    else:
        if active:
            messages.success(request, "Survey activated.")
        else:
            messages.success(request, "Survey deactivated.")
    return redirect("surveys:list")


@login_required
@require_http_methods(["GET", "POST"])
def survey_delete(request: HttpRequest, survey_id) -> HttpResponse:
    """
    Delete a survey with confirmation.

    GET: Show confirmation page
    POST: Delete the survey and all its responses if the typed title matches
    """
    scope = _scope(request)
    survey = store.get_survey(scope, survey_id)

    if request.method == "GET":
        return render(request, "surveys/delete_confirm.html", {"survey": survey})

    confirm_title = request.POST.get("confirm_title", "").strip()
    if confirm_title != survey.title.strip():
        messages.error(
            request,
            f"Survey title does not match. Please type '{survey.title}' exactly to confirm deletion.",
        )
        return render(
            request,
            "surveys/delete_confirm.html",
            {"survey": survey, "confirm_title": confirm_title},
            status=400,
        )

    try:
        store.delete_survey(scope, survey.id)
    except PersistenceError:
        messages.error(request, "Could not delete the survey. Please try again.")
        return redirect("surveys:list")
    discard_draft(request.session, survey.id)
    messages.success(request, f"Survey '{survey.title}' has been deleted.")
    return redirect("surveys:list")


# -------------------- Results --------------------


@login_required
def survey_results(request: HttpRequest, survey_id) -> HttpResponse:
    scope = _scope(request)
    survey = store.get_survey(scope, survey_id)
    responses = store.list_responses(scope, survey.id)
    questions = survey.get_questions()
    rows = [
        {
            "response": r,
            "cells": [answer_for(q, (r.responses or {}).get(q.id)).display() for q in questions],
        }
        for r in responses
    ]
    return render(
        request,
        "surveys/results.html",
        {"survey": survey, "questions": questions, "rows": rows},
    )


def csv_response(survey: Survey, responses) -> HttpResponse:
    content = render_csv(build_export_rows(survey, responses))
    response = HttpResponse(content, content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = content_disposition_header(
        as_attachment=True, filename=export_filename(survey)
    )
    return response


@login_required
def survey_export_csv(request: HttpRequest, survey_id) -> HttpResponse:
    scope = _scope(request)
    survey = store.get_survey(scope, survey_id)
    responses = store.list_responses(scope, survey.id)
    logger.info(f"Exporting {len(responses)} responses for survey {survey.id}")
    return csv_response(survey, responses)


# -------------------- Editor --------------------


def _apply_posted_fields(draft: SurveyDraft, data: QueryDict) -> None:
    """Copy the editor form's current values onto the draft."""
    if "title" in data:
        draft.title = data.get("title", "")
    if "description" in data:
        draft.description = data.get("description", "")
    if "mailerlite_group_id" in data:
        draft.mailerlite_group_id = data.get("mailerlite_group_id", "")
    for q in list(draft.questions):
        prefix = f"q-{q.id}"
        if f"{prefix}-title" not in data:
            continue
        patch: dict[str, Any] = {
            "title": data.get(f"{prefix}-title", ""),
            "description": data.get(f"{prefix}-description", ""),
            "required": data.get(f"{prefix}-required") == "on",
        }
        posted_type = data.get(f"{prefix}-type")
        if posted_type in QuestionType.values:
            patch["type"] = posted_type
        # Option inputs are only rendered for option-bearing questions, and
        # belong to the type they were rendered for
        if q.type in OPTION_TYPES and patch.get("type", q.type) == q.type:
            patch["options"] = data.getlist(f"{prefix}-option")
        draft.update_question(q.id, **patch)


def _apply_action(draft: SurveyDraft, action: str) -> None:
    # Buttons post "name", "name:<question id>" or "name:<question id>:<option index>"
    action, _, target = action.partition(":")
    qid, _, index = target.partition(":")
    if action == "add_question":
        draft.add_question()
    elif action == "remove_question":
        draft.remove_question(qid)
    elif action == "move_up":
        draft.move_question(qid, -1)
    elif action == "move_down":
        draft.move_question(qid, 1)
    elif action == "add_option":
        draft.add_option(qid)
    elif action == "remove_option":
        draft.remove_option(qid, int(index))
    # "update" only applies the posted fields


def _editor(request: HttpRequest, survey: Survey | None) -> HttpResponse:
    scope = _scope(request)
    key = session_key(survey.id if survey else None)
    draft = load_draft(request.session, survey)

    if request.method == "POST":
        action = request.POST.get("action", "update")
        if action == "discard":
            discard_draft(request.session, survey.id if survey else None)
            return redirect(request.path)
        _apply_posted_fields(draft, request.POST)
        if action == "save":
            try:
                saved = draft.save(scope)
            except DraftValidationError as e:
                messages.error(request, e.messages[0])
            except PersistenceError:
                messages.error(request, GENERIC_SAVE_ERROR)
            else:
                discard_draft(request.session, survey.id if survey else None)
                if survey is None:
                    messages.success(request, f"Survey '{saved.title}' created.")
                else:
                    messages.success(request, "Survey saved.")
                return redirect("surveys:list")
        else:
            try:
                _apply_action(draft, action)
            except (KeyError, IndexError, ValueError):
                messages.error(request, "That question or option no longer exists.")
        store_draft(request.session, draft, key)
        return redirect(request.path)

    token = get_token(request.user)
    if token:
        draft.ensure_groups(token)
        store_draft(request.session, draft, key)
    context = {
        "survey": survey,
        "draft": draft,
        "has_token": bool(token),
        "question_types": QuestionType.choices,
    }
    return render(request, "surveys/editor.html", context)


@login_required
@require_http_methods(["GET", "POST"])
def survey_create(request: HttpRequest) -> HttpResponse:
    return _editor(request, None)


@login_required
@require_http_methods(["GET", "POST"])
def survey_edit(request: HttpRequest, survey_id) -> HttpResponse:
    survey = store.get_survey(_scope(request), survey_id)
    return _editor(request, survey)


# -------------------- Respondent --------------------


def _run_key(survey_id, embedded: bool) -> str:
    return f"survey_run:{'embed:' if embedded else ''}{survey_id}"


def _current_run(request: HttpRequest, survey_id, embedded: bool) -> SurveyRun:
    data = request.session.get(_run_key(survey_id, embedded))
    if data is not None:
        return SurveyRun.restore(data)
    return SurveyRun.load(survey_id, embedded=embedded)


def _keep_run(request: HttpRequest, run: SurveyRun) -> None:
    request.session[_run_key(run.survey_id, run.embedded)] = run.snapshot()


def _restart_run(request: HttpRequest, survey_id, embedded: bool) -> None:
    data = request.session.pop(_run_key(survey_id, embedded), None)
    if data is not None:
        SurveyRun.restore(data).close()


def _not_found(request: HttpRequest, embedded: bool) -> HttpResponse:
    return render(
        request,
        "surveys/not_found.html",
        {"base_template": "embed_base.html" if embedded else "base.html"},
        status=404,
    )


def _read_current_answer(run: SurveyRun, data: QueryDict) -> None:
    question = run.current_question
    if question.type != QuestionType.CHECKBOX:
        run.set_answer(question.id, data.get("answer"))
        return
    # Toggle only the boxes that changed so earlier picks keep their order
    current = run.answer(question.id).to_json() or []
    posted = [option for option in data.getlist("answer") if option]
    for option in current:
        if option not in posted:
            run.toggle_option(question.id, option)
    for option in dict.fromkeys(posted):
        if option not in current:
            run.toggle_option(question.id, option)


def _respond(request: HttpRequest, survey_id, embedded: bool) -> HttpResponse:
    if request.method == "GET" and "restart" in request.GET:
        _restart_run(request, survey_id, embedded)
        return redirect(request.path)

    run = _current_run(request, survey_id, embedded)
    if run.state == RunState.ERROR:
        request.session.pop(_run_key(survey_id, embedded), None)
        return _not_found(request, embedded)

    if request.method == "POST":
        if run.state == RunState.ANSWERING:
            _read_current_answer(run, request.POST)
            action, _, target = request.POST.get("action", "next").partition(":")
            try:
                if action == "previous":
                    run.previous()
                elif action == "goto":
                    run.go_to(int(target))
                else:
                    run.next()
            except AnswerRequired as e:
                messages.error(request, e.messages[0])
            except (IndexError, ValueError):
                messages.error(request, "You can only go back to questions you have already seen.")
            except PersistenceError:
                messages.error(request, "We could not save your answers. Please try again.")
            else:
                if run.state == RunState.SUBMITTED:
                    messages.success(request, "Thank you! Your answers have been saved.")
        _keep_run(request, run)
        return redirect(request.path)

    if run.state == RunState.SUBMITTED and run.poll_contact_prompt():
        _keep_run(request, run)
    if run.state == RunState.CONTACT_PROMPT:
        return redirect("respond:contact", survey_id=run.survey_id)
    _keep_run(request, run)

    context = {
        "survey": run.survey,
        "run": run,
        "embedded": embedded,
        "base_template": "embed_base.html" if embedded else "base.html",
    }
    if run.state == RunState.SUBMITTED:
        context["refresh_seconds"] = run.refresh_seconds()
        return render(request, "surveys/submitted.html", context)

    question = run.current_question
    answer = run.answer(question.id)
    context.update(
        {
            "question": question,
            "answer": answer,
            "selected": (answer.to_json() or []) if question.type == QuestionType.CHECKBOX else [],
            "progress_percent": round(run.progress * 100),
            "positions": range(run.question_count),
        }
    )
    return render(request, "surveys/take.html", context)


@require_http_methods(["GET", "POST"])
@ratelimit(key="ip", rate="30/m", method="POST", block=True)
def survey_take(request: HttpRequest, survey_id) -> HttpResponse:
    return _respond(request, survey_id, embedded=False)


@xframe_options_exempt
@require_http_methods(["GET", "POST"])
@ratelimit(key="ip", rate="30/m", method="POST", block=True)
def survey_embed(request: HttpRequest, survey_id) -> HttpResponse:
    return _respond(request, survey_id, embedded=True)


@require_http_methods(["GET", "POST"])
@ratelimit(key="ip", rate="10/m", method="POST", block=True)
def survey_contact(request: HttpRequest, survey_id) -> HttpResponse:
    take_url = reverse("respond:take", kwargs={"survey_id": survey_id})
    data = request.session.get(_run_key(survey_id, False))
    if data is None:
        return redirect(take_url)
    run = SurveyRun.restore(data)
    if run.state == RunState.ERROR:
        return _not_found(request, False)
    if run.state == RunState.SUBMITTED:
        run.poll_contact_prompt()
    if run.state != RunState.CONTACT_PROMPT:
        _keep_run(request, run)
        return redirect(take_url)

    if request.method == "POST":
        if request.POST.get("action") == "skip":
            run.skip_contact()
            _keep_run(request, run)
            return redirect(take_url)
        name = request.POST.get("name", "")
        email = request.POST.get("email", "")
        try:
            run.complete_contact(name, email)
        except ContactInvalid as e:
            messages.error(request, e.messages[0])
            return render(
                request,
                "surveys/contact.html",
                {"survey": run.survey, "name": name, "email": email},
                status=400,
            )
        except InvalidTransition:
            run.skip_contact()
        except PersistenceError:
            messages.error(request, GENERIC_SAVE_ERROR)
            return render(
                request,
                "surveys/contact.html",
                {"survey": run.survey, "name": name, "email": email},
                status=500,
            )
        else:
            messages.success(request, "Thank you! Your details have been saved.")
        _keep_run(request, run)
        return redirect(take_url)

    return render(request, "surveys/contact.html", {"survey": run.survey})
