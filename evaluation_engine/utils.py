from rest_framework import serializers


class LabelChoiceField(serializers.ChoiceField):
    """
    Accepts either the stored code ("STUDENT") or its display label
    ("Heteroevaluación", case-insensitive) and always stores the code.
    """

    def __init__(self, *args, represent_label=False, **kwargs):
        self.represent_label = represent_label
        super().__init__(*args, **kwargs)

    def to_internal_value(self, data):
        data_str = str(data).strip()
        if data_str in self.choices:
            return data_str
        for key, label in self.choices.items():
            if label == data_str:
                return key

        for key, label in self.choices.items():
            if label.lower() == data_str.lower() or str(key).lower() == data_str.lower():
                return key
        self.fail('invalid_choice', input=data)

    def to_representation(self, value):
        if self.represent_label:
            return self.choices.get(value, super().to_representation(value))
        return super().to_representation(value)
