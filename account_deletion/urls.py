from django.urls import path
from .views import DeleteAccountView

app_name = 'account_deletion'
urlpatterns = [
    path('profiles/delete-account/', DeleteAccountView.as_view(), name='delete-account'),
]
