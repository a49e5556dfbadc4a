from django.urls import path

from . import views

urlpatterns = [
    # Personnel
    path("personnel/<int:personnel_id>/role", views.personnel_role, name="api_personnel_role"),

    # CQ schedule
    path("cq/my-shift", views.my_shift, name="api_my_shift"),
    path("cq/schedule", views.schedule_list, name="api_schedule"),
    path("cq/schedule/import", views.schedule_import, name="api_schedule_import"),
    path("cq/schedule/generate", views.schedule_generate, name="api_schedule_generate"),
    path("cq/schedule/<int:schedule_id>/status", views.schedule_status, name="api_schedule_status"),
    path("cq/schedule/<int:schedule_id>/assign", views.schedule_assign, name="api_schedule_assign"),
    path("cq/skips", views.schedule_skips, name="api_skips"),
    path("cq/skips/<int:skip_id>", views.schedule_skip_detail, name="api_skip_detail"),

    # Swaps
    path("cq/swaps", views.swap_requests, name="api_swaps"),
    path("cq/swaps/<int:swap_id>/<str:action>", views.swap_action, name="api_swap_action"),

    # Liberty
    path("liberty", views.liberty_requests, name="api_liberty"),
    path("liberty/deadline", views.liberty_deadline, name="api_liberty_deadline"),
    path("liberty/on-behalf", views.liberty_on_behalf, name="api_liberty_on_behalf"),
    path("liberty/bulk/<str:action>", views.liberty_bulk, name="api_liberty_bulk"),
    path("liberty/<int:request_id>", views.liberty_detail, name="api_liberty_detail"),
    path("liberty/<int:request_id>/join-requests", views.liberty_join_requests, name="api_liberty_join"),
    path(
        "liberty/<int:request_id>/join-requests/<int:user_id>/<str:action>",
        views.liberty_join_decision,
        name="api_liberty_join_decision",
    ),
    path(
        "liberty/<int:request_id>/slots/<int:slot_index>/<str:action>",
        views.liberty_slot,
        name="api_liberty_slot",
    ),
    path("liberty/<int:request_id>/<str:action>", views.liberty_action, name="api_liberty_action"),

    # Weather / UOTD
    path("weather/current", views.weather_current, name="api_weather_current"),
    path("weather/check", views.weather_check, name="api_weather_check"),
    path("weather/recommendations", views.recommendations, name="api_recommendations"),
    path("weather/recommendations/<int:rec_id>/<str:action>", views.recommendation_action, name="api_recommendation_action"),

    # Counters and exports
    path("pending-counts", views.pending_counts, name="api_pending_counts"),
    path("export/ics", views.export_ics, name="api_export_ics"),
    path("export/liberty.xlsx", views.export_liberty, name="api_export_liberty"),
]
