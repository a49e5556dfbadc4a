from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from companyops.domain.errors import ValidationError
from companyops.domain.forms import GenerateScheduleForm, ShiftAssignmentForm, SkipDateForm
from companyops.domain.models import LibertyRequest, ScheduleEntry, ScheduleSkip, SwapRequest, WeatherRecommendation
from companyops.domain.repositories import PersonnelRepository
from companyops.domain.roles import Permission, assign_role, require_permission
from companyops.services import cq_schedule, liberty, swaps, weather
from companyops.services.exporters.export_ics import export_schedule_ics
from companyops.services.exporters.export_xlsx import export_liberty_xlsx
from companyops.utils import _get_date_param

from .filters import LibertyRequestFilter, ScheduleEntryFilter, SwapRequestFilter, WeatherRecommendationFilter
from .serializers import (
    LibertyRequestSerializer,
    PersonnelSerializer,
    ScheduleEntrySerializer,
    ScheduleSkipSerializer,
    SwapRequestSerializer,
    WeatherRecommendationSerializer,
)


def _actor(request):
    return PersonnelRepository.for_user(request.user)


def _form_or_raise(form_class, data):
    form = form_class(data=data)
    if not form.is_valid():
        raise ValidationError.from_form(form)
    return form.cleaned_data


def _ids(request):
    raw = request.data.get("ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationError({"ids": ["Provide a non-empty list of request ids."]})
    try:
        return [int(i) for i in raw]
    except (TypeError, ValueError):
        raise ValidationError({"ids": ["Ids must be integers."]})

# ========= Personnel =========

@api_view(["POST"])
@permission_classes([IsAuthenticated])
def personnel_role(request, personnel_id: int):
    person = assign_role(PersonnelRepository.get(personnel_id), request.data.get("role"), _actor(request))
    return Response(PersonnelSerializer(person).data)

# ========= CQ schedule =========

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_shift(request):
    shift = cq_schedule.find_my_shift_tonight(_actor(request))
    return Response({"shift": shift.as_dict() if shift else None})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def schedule_list(request):
    qs = ScheduleEntryFilter(request.query_params, queryset=ScheduleEntry.objects.order_by("date")).qs
    return Response(ScheduleEntrySerializer(qs, many=True).data)


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def schedule_skips(request):
    if request.method == "GET":
        return Response(ScheduleSkipSerializer(ScheduleSkip.objects.order_by("date"), many=True).data)
    cd = _form_or_raise(SkipDateForm, request.data)
    result = cq_schedule.skip_date(cd["date"], cd["reason"], _actor(request))
    return Response(result, status=status.HTTP_201_CREATED)


@api_view(["DELETE"])
@permission_classes([IsAuthenticated])
def schedule_skip_detail(request, skip_id: int):
    cq_schedule.remove_skip(skip_id, _actor(request))
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def schedule_import(request):
    upload = request.FILES.get("file")
    if upload is not None:
        rows = cq_schedule.parse_schedule_csv(upload.read().decode("utf-8-sig"))
    else:
        rows = request.data.get("rows")
        if not isinstance(rows, list):
            return Response({"detail": "Send a CSV 'file' or a list of 'rows'."}, status=status.HTTP_400_BAD_REQUEST)
    clear = str(request.data.get("clear_existing", "")).lower() in ("1", "true", "yes")
    count = cq_schedule.import_schedule(rows, _actor(request), clear_existing=clear)
    return Response({"imported": count}, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def schedule_generate(request):
    cd = _form_or_raise(GenerateScheduleForm, request.data)
    result = cq_schedule.generate_schedule(cd["start"], cd["days"], actor=_actor(request))
    return Response(
        {
            "created": [d.isoformat() for d in result.created],
            "skipped": [d.isoformat() for d in result.skipped],
            "existing": [d.isoformat() for d in result.existing],
        },
        status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def schedule_status(request, schedule_id: int):
    entry = cq_schedule.update_schedule_status(schedule_id, request.data.get("status"), _actor(request))
    return Response(ScheduleEntrySerializer(entry).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def schedule_assign(request, schedule_id: int):
    cd = _form_or_raise(ShiftAssignmentForm, request.data)
    person = PersonnelRepository.find(cd.get("personnel_id"))
    entry = cq_schedule.update_shift_assignment(
        schedule_id, cd["shift_type"], cd["position"], person, cd.get("name") or None, _actor(request)
    )
    return Response(ScheduleEntrySerializer(entry).data)

# ========= Swaps =========

@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def swap_requests(request):
    actor = _actor(request)
    if request.method == "POST":
        swap = swaps.create_swap_request(request.data, actor)
        return Response(SwapRequestSerializer(swap).data, status=status.HTTP_201_CREATED)

    if request.query_params.get("scope") == "all":
        require_permission(actor, Permission.MANAGE_CQ_OPERATIONS)
        qs = SwapRequest.objects.order_by("-created_at")
    else:
        qs = SwapRequest.objects.filter(requester=actor).order_by("-created_at")
    qs = SwapRequestFilter(request.query_params, queryset=qs).qs
    return Response(SwapRequestSerializer(qs, many=True).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def swap_action(request, swap_id: int, action: str):
    actor = _actor(request)
    if action == "approve":
        swap = swaps.approve_swap_request(swap_id, actor)
    elif action == "reject":
        swap = swaps.reject_swap_request(swap_id, actor, request.data.get("reason") or "")
    elif action == "cancel":
        swap = swaps.cancel_swap_request(swap_id, actor)
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response(SwapRequestSerializer(swap).data)

# ========= Liberty =========

@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def liberty_requests(request):
    actor = _actor(request)
    if request.method == "POST":
        result = liberty.create_liberty_request(request.data, actor)
        if result.get("isDuplicate"):
            return Response(
                {
                    "success": False,
                    "isDuplicate": True,
                    "existingRequest": LibertyRequestSerializer(result["existingRequest"]).data,
                    "message": result["message"],
                },
                status=status.HTTP_409_CONFLICT,
            )
        return Response(LibertyRequestSerializer(result["request"]).data, status=status.HTTP_201_CREATED)

    scope = request.query_params.get("scope", "mine")
    if scope == "all":
        require_permission(actor, Permission.VIEW_PASS_REQUESTS)
        qs = LibertyRequest.objects.order_by("-created_at")
    elif scope == "available":
        weekend, err = _get_date_param(request, "weekend_date")
        if err:
            return Response({"detail": err}, status=status.HTTP_400_BAD_REQUEST)
        return Response(LibertyRequestSerializer(liberty.available_liberty_groups(actor, weekend), many=True).data)
    else:
        qs = LibertyRequest.objects.filter(requester=actor).order_by("-created_at")
    qs = LibertyRequestFilter(request.query_params, queryset=qs).qs
    return Response(LibertyRequestSerializer(qs, many=True).data)


@api_view(["PUT", "PATCH"])
@permission_classes([IsAuthenticated])
def liberty_detail(request, request_id: int):
    req = liberty.update_liberty_request(
        request_id, request.data, _actor(request), partial=request.method == "PATCH"
    )
    return Response(LibertyRequestSerializer(req).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def liberty_action(request, request_id: int, action: str):
    actor = _actor(request)
    reason = request.data.get("reason") or ""
    if action == "approve":
        req = liberty.approve_liberty_request(request_id, actor)
    elif action == "reject":
        req = liberty.reject_liberty_request(request_id, actor, reason)
    elif action == "cancel":
        req = liberty.cancel_liberty_request(request_id, actor, reason)
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response(LibertyRequestSerializer(req).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def liberty_bulk(request, action: str):
    actor = _actor(request)
    ids = _ids(request)
    if action == "approve":
        results = liberty.bulk_approve(ids, actor)
    elif action == "reject":
        results = liberty.bulk_reject(ids, actor, request.data.get("reason") or "")
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response({"results": results})


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def liberty_on_behalf(request):
    target = PersonnelRepository.get(request.data.get("target_id"))
    req = liberty.create_liberty_request_for_user(
        request.data, target, _actor(request), status=request.data.get("status") or "approved"
    )
    return Response(LibertyRequestSerializer(req).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def liberty_slot(request, request_id: int, slot_index: int, action: str):
    actor = _actor(request)
    if action == "join":
        req = liberty.join_time_slot(request_id, slot_index, actor)
    elif action == "leave":
        req = liberty.leave_time_slot(request_id, slot_index, actor)
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response(LibertyRequestSerializer(req).data)


@api_view(["POST", "DELETE"])
@permission_classes([IsAuthenticated])
def liberty_join_requests(request, request_id: int):
    actor = _actor(request)
    if request.method == "DELETE":
        req = liberty.cancel_join_request(request_id, actor)
        return Response(LibertyRequestSerializer(req).data)
    req = liberty.request_to_join(request_id, actor)
    return Response(LibertyRequestSerializer(req).data, status=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def liberty_join_decision(request, request_id: int, user_id: int, action: str):
    actor = _actor(request)
    if action == "approve":
        req = liberty.approve_join_request(request_id, user_id, actor)
    elif action == "reject":
        req = liberty.reject_join_request(request_id, user_id, actor, request.data.get("reason") or "")
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response(LibertyRequestSerializer(req).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def liberty_deadline(request):
    return Response(liberty.deadline_status())

# ========= Weather / UOTD =========

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def weather_current(request):
    return Response(weather.current_weather())


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def weather_check(request):
    force = str(request.data.get("force", "")).lower() in ("1", "true", "yes")
    result = weather.manual_weather_check(_actor(request), request.data.get("target_slot") or None, force=force)
    return Response(result, status=status.HTTP_201_CREATED if result.get("recommendationId") else status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def recommendations(request):
    qs = WeatherRecommendation.objects.order_by("-created_at")
    qs = WeatherRecommendationFilter(request.query_params, queryset=qs).qs
    return Response(WeatherRecommendationSerializer(qs, many=True).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def recommendation_action(request, rec_id: int, action: str):
    actor = _actor(request)
    if action == "approve":
        rec = weather.approve_recommendation(rec_id, actor)
    elif action == "reject":
        rec = weather.reject_recommendation(rec_id, actor, request.data.get("reason") or "")
    else:
        return Response({"detail": "Unknown action"}, status=status.HTTP_404_NOT_FOUND)
    return Response(WeatherRecommendationSerializer(rec).data)

# ========= Counters and exports =========

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def pending_counts(request):
    return Response({
        "liberty": liberty.pending_liberty_count(),
        "swaps": swaps.pending_swap_count(),
        "recommendations": WeatherRecommendation.objects.filter(status="pending").count(),
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def export_ics(request):
    start, err = _get_date_param(request, "start")
    end, err2 = _get_date_param(request, "end")
    if err or err2:
        return Response({"detail": err or err2}, status=status.HTTP_400_BAD_REQUEST)
    content = export_schedule_ics(start, end)
    resp = HttpResponse(content, content_type="text/calendar")
    resp["Content-Disposition"] = 'attachment; filename="cq-schedule.ics"'
    return resp


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def export_liberty(request):
    require_permission(_actor(request), Permission.VIEW_PASS_REQUESTS)
    weekend, err = _get_date_param(request, "weekend_date", required=True)
    if err:
        return Response({"detail": err}, status=status.HTTP_400_BAD_REQUEST)
    include_pending = request.query_params.get("include_pending") in ("1", "true", "yes")
    content = export_liberty_xlsx(weekend, include_pending=include_pending)
    resp = HttpResponse(content, content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
    resp["Content-Disposition"] = f'attachment; filename="liberty-{weekend.isoformat()}.xlsx"'
    return resp
