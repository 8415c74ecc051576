from rest_framework import serializers
from .models import Country


class CountrySerializer(serializers.ModelSerializer):
    class Meta:
        model = Country
        fields = [
            'id', 'name', 'capital', 'region', 'population',
            'currency_code', 'exchange_rate', 'estimated_gdp',
            'flag_url', 'last_refreshed_at'
        ]


class CountryRecordSerializer(serializers.Serializer):
    """
    Candidate record produced by a refresh run, before it is upserted.
    Rules: name non-empty, population > 0, currency_code present.
    """
    name = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    population = serializers.IntegerField(required=False, allow_null=True)
    currency_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        errors = {}

        if not data.get("name"):
            errors["name"] = "is required"
        population = data.get("population")
        if population is None:
            errors["population"] = "is required"
        elif population <= 0:
            errors["population"] = "must be greater than 0"
        if not data.get("currency_code"):
            errors["currency_code"] = "is required"

        if errors:
            raise serializers.ValidationError({
                "error": "Validation failed",
                "details": errors
            })

        return data


def validate_country_record(candidate):
    """Return {} for a valid candidate, otherwise {field: reason}."""
    serializer = CountryRecordSerializer(data={
        "name": candidate.get("name"),
        "population": candidate.get("population"),
        "currency_code": candidate.get("currency_code"),
    })
    if serializer.is_valid():
        return {}
    errors = serializer.errors
    details = errors.get("details")
    if details is None:
        # field-level type errors, e.g. a non-integer population
        return {key: str(value[0]) for key, value in errors.items()}
    return {key: str(value) for key, value in details.items()}
