import django_filters
from django.db.models import Q

from companyops.domain.models import (
    LibertyRequest,
    RecommendationStatus,
    RequestStatus,
    ScheduleEntry,
    ScheduleStatus,
    SwapRequest,
    WeatherRecommendation,
)


class ScheduleEntryFilter(django_filters.FilterSet):
    start = django_filters.DateFilter(field_name="date", lookup_expr="gte")
    end = django_filters.DateFilter(field_name="date", lookup_expr="lte")
    status = django_filters.ChoiceFilter(choices=ScheduleStatus.choices)
    person = django_filters.NumberFilter(method="filter_person")

    class Meta:
        model = ScheduleEntry
        fields = ["start", "end", "status", "person"]

    def filter_person(self, queryset, name, value):
        return queryset.filter(
            Q(shift1_person1_id=value) | Q(shift1_person2_id=value)
            | Q(shift2_person1_id=value) | Q(shift2_person2_id=value)
        )


class SwapRequestFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=RequestStatus.choices)
    requester = django_filters.NumberFilter(field_name="requester_id")

    class Meta:
        model = SwapRequest
        fields = ["status", "requester"]


class LibertyRequestFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=RequestStatus.choices)
    weekend_date = django_filters.DateFilter()
    requester = django_filters.NumberFilter(field_name="requester_id")
    is_driver = django_filters.BooleanFilter()

    class Meta:
        model = LibertyRequest
        fields = ["status", "weekend_date", "requester", "is_driver"]


class WeatherRecommendationFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=RecommendationStatus.choices)
    target_date = django_filters.DateFilter()

    class Meta:
        model = WeatherRecommendation
        fields = ["status", "target_date", "target_slot"]
