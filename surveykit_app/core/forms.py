from django import forms
from django.contrib.auth import get_user_model
from django.contrib.auth.forms import UserCreationForm
from django.db.models import Q

User = get_user_model()


class SignupForm(UserCreationForm):
    """Sign-up by email; the normalized email doubles as the username."""

    email = forms.EmailField(required=True)

    class Meta(UserCreationForm.Meta):
        model = User
        fields = ("email",)

    def clean_email(self):
        email = (self.cleaned_data.get("email") or "").strip().lower()
        if not email:
            raise forms.ValidationError("Email is required")
        taken = User.objects.filter(Q(email__iexact=email) | Q(username__iexact=email))
        if taken.exists():
            raise forms.ValidationError("An account with this email already exists")
        return email

    def save(self, commit=True):
        user = super().save(commit=False)
        user.username = user.email = self.cleaned_data["email"]
        if commit:
            user.save()
        return user
