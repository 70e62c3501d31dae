from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import SplitSheetViewSet

router = DefaultRouter()
router.register(r'splits', SplitSheetViewSet, basename='splitsheet')

app_name = 'splits'
urlpatterns = [
    path('', include(router.urls)),
]
