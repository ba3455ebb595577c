import django_filters

from .models import Visit


class VisitFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=Visit.Status.choices)
    housing = django_filters.CharFilter(field_name='housing_id')
    scheduled_after = django_filters.DateTimeFilter(field_name='scheduled_at', lookup_expr='gte')
    scheduled_before = django_filters.DateTimeFilter(field_name='scheduled_at', lookup_expr='lte')

    class Meta:
        model = Visit
        fields = ['status', 'housing', 'validated_by_requester']
