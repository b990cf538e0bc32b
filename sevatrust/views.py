from django.http import JsonResponse


def error_404_view(request, exception):
    return JsonResponse({"message": "Not found"}, status=404)


def error_500_view(request):
    # never leak internals to the client
    return JsonResponse({"message": "Server error"}, status=500)
