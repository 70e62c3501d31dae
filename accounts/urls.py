from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import (
    InviteCodeViewSet,
    LabelViewSet,
    ProfileViewSet,
    ProOrgViewSet,
    PublisherViewSet,
)

router = DefaultRouter()
router.register(r'invites', InviteCodeViewSet, basename='invite')
router.register(r'publishers', PublisherViewSet, basename='publisher')
router.register(r'pro-orgs', ProOrgViewSet, basename='pro-org')
router.register(r'labels', LabelViewSet, basename='label')
router.register(r'profiles', ProfileViewSet, basename='profile')

app_name = 'accounts'
urlpatterns = [
    path('', include(router.urls)),
]
