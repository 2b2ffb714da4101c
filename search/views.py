from rest_framework import permissions
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema

from search import utils as search_utils
from search.serializers import SearchQuerySerializer, AutocompleteQuerySerializer, SearchResultSerializer


@swagger_auto_schema(method="get", query_serializer=SearchQuerySerializer)
@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def enhanced_search(request):
    params = SearchQuerySerializer(data=request.query_params)
    params.is_valid(raise_exception=True)

    result = search_utils.enhanced_search(**params.validated_data)
    result["products"] = SearchResultSerializer(result["products"], many=True).data
    return Response(result)


@swagger_auto_schema(method="get", query_serializer=AutocompleteQuerySerializer)
@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def autocomplete(request):
    params = AutocompleteQuerySerializer(data=request.query_params)
    params.is_valid(raise_exception=True)
    return Response(search_utils.autocomplete(params.validated_data["q"], params.validated_data["limit"]))


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def suggestions(request):
    query = (request.query_params.get("q") or "").strip()
    return Response({"suggestions": search_utils.generate_suggestions(query)})


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def trending(request):
    return Response({"searches": search_utils.trending_searches()})
