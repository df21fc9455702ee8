# upload_gateway/stack.py

import hashlib
import json
import logging

import pulumi
import pulumi_aws as aws

from upload_gateway.config import get_gateway_settings
from upload_gateway.errors import ConfigurationError
from upload_gateway.policies import (
    build_bucket_access_policy,
    build_rate_limit_policy,
    build_trust_policy
)
from upload_gateway.responses import (
    build_method_contract,
    build_preflight_response,
    build_response_mapping
)
from upload_gateway.routes import binary_media_types, build_routes, integration_uri

logger = logging.getLogger(__name__)


def _slug(path):
    return path.strip("/").replace("{", "").replace("}", "").replace("/", "-")


def resource_names(api_name, routes):
    """
    Pulumi resource name for every path prefix of the routes.

    Raises:
        ConfigurationError: if two distinct paths would share a name.
    """
    names = {}
    owners = {}
    for route in routes:
        path = ""
        for segment in route["path_segments"]:
            path = f"{path}/{segment}"
            name = f"{api_name}-{_slug(path)}"
            if owners.setdefault(name, path) != path:
                raise ConfigurationError(
                    f"Paths '{owners[name]}' and '{path}' map to the same resource name '{name}'"
                )
            names[path] = name
    return names


def deployment_fingerprint(settings, routes, response_mapping):
    """Hash of everything the deployed stage depends on; a change forces a redeployment."""
    return hashlib.sha1(json.dumps({
        "routes": routes,
        "responses": response_mapping,
        "require_api_key": settings.get("require_api_key", False),
        "bucket_name": settings["bucket_name"],
        "region": settings["region"],
        "binary_media_types": binary_media_types(routes),
        "cors": settings["cors"]
    }, sort_keys=True).encode("utf-8")).hexdigest()


def _add_preflight(api, resource, resource_name, cors):
    """OPTIONS mock answering CORS preflight requests for one resource."""
    preflight = build_preflight_response(cors)

    options_method = aws.apigateway.Method(f"{resource_name}-options",
        rest_api=api.id,
        resource_id=resource.id,
        http_method="OPTIONS",
        authorization="NONE")

    options_method_response = aws.apigateway.MethodResponse(f"{resource_name}-options-method-response",
        rest_api=api.id,
        resource_id=resource.id,
        http_method="OPTIONS",
        status_code=preflight["status_code"],
        response_models={
            "application/json": "Empty"
        },
        response_parameters={
            parameter: True for parameter in preflight["response_parameters"]
        },
        opts=pulumi.ResourceOptions(depends_on=[options_method]))

    options_integration = aws.apigateway.Integration(f"{resource_name}-options-integration",
        rest_api=api.id,
        resource_id=resource.id,
        http_method="OPTIONS",
        type="MOCK",
        passthrough_behavior="WHEN_NO_TEMPLATES",
        request_templates={
            "application/json": json.dumps({"statusCode": int(preflight["status_code"])})
        },
        opts=pulumi.ResourceOptions(depends_on=[options_method]))

    return aws.apigateway.IntegrationResponse(f"{resource_name}-options-integration-response",
        rest_api=api.id,
        resource_id=resource.id,
        http_method="OPTIONS",
        status_code=preflight["status_code"],
        response_parameters=preflight["response_parameters"],
        opts=pulumi.ResourceOptions(depends_on=[
            options_method,
            options_integration,
            options_method_response
        ]))


def build_gateway(settings=None):
    """
    Declare the upload gateway resource graph.

    All route configuration is validated before the first resource is
    declared, so a bad configuration fails the whole deployment.

    Returns:
        Dictionary of the declared resources
    """
    settings = settings or get_gateway_settings()
    api_name = settings["api_name"]
    bucket_name = settings["bucket_name"]
    cors = settings["cors"]

    routes = build_routes(settings)
    names = resource_names(api_name, routes)
    response_mapping = build_response_mapping(cors)
    rate_limit = None
    if settings.get("rate_limit"):
        rate_limit = build_rate_limit_policy(**settings["rate_limit"])

    # Role API Gateway assumes to write into the bucket
    role = aws.iam.Role(f"{api_name}-s3-upload-role",
        assume_role_policy=json.dumps(build_trust_policy()),
        path="/")

    aws.iam.RolePolicy(f"{api_name}-s3-upload-policy",
        role=role.id,
        policy=json.dumps(build_bucket_access_policy(bucket_name)))

    api = aws.apigateway.RestApi(f"{api_name}-api",
        name=api_name,
        description=settings["description"],
        binary_media_types=binary_media_types(routes),
        endpoint_configuration={
            "types": settings["endpoint_type"]
        })

    # Required request parameters are only enforced with a validator attached
    validator = aws.apigateway.RequestValidator(f"{api_name}-request-validator",
        rest_api=api.id,
        name=f"{api_name}-request-parameters",
        validate_request_parameters=True,
        validate_request_body=False)

    # Resources are shared between routes with a common prefix
    api_resources = {}
    preflights = {}
    deploy_dependencies = []
    methods = {}
    integrations = {}
    integration_responses = {}

    for route in routes:
        parent_id = api.root_resource_id
        path = ""
        for segment in route["path_segments"]:
            path = f"{path}/{segment}"
            if path not in api_resources:
                resource_name = names[path]
                resource = aws.apigateway.Resource(resource_name,
                    rest_api=api.id,
                    parent_id=parent_id,
                    path_part=segment)
                api_resources[path] = resource
                preflights[path] = _add_preflight(api, resource, resource_name, cors)
                deploy_dependencies.append(preflights[path])
            parent_id = api_resources[path].id

        resource = api_resources[route["path"]]
        route_name = f"{route['http_method'].lower()}-{api_name}-{_slug(route['path'])}"
        contract = build_method_contract(route, settings.get("require_api_key", False), cors)
        logger.info(f"Declaring {route['http_method']} {route['path']} -> {bucket_name}/{route['storage_path']}")

        method = aws.apigateway.Method(route_name,
            rest_api=api.id,
            resource_id=resource.id,
            http_method=contract["http_method"],
            authorization=contract["authorization"],
            api_key_required=contract["api_key_required"],
            request_parameters=contract["request_parameters"],
            request_validator_id=validator.id)

        method_responses = [
            aws.apigateway.MethodResponse(f"{route_name}-{method_response['status_code']}",
                rest_api=api.id,
                resource_id=resource.id,
                http_method=method.http_method,
                status_code=method_response["status_code"],
                response_parameters=method_response["response_parameters"],
                opts=pulumi.ResourceOptions(depends_on=[method]))
            for method_response in contract["method_responses"]
        ]

        integration = aws.apigateway.Integration(f"{route_name}-integration",
            rest_api=api.id,
            resource_id=resource.id,
            http_method=method.http_method,
            integration_http_method=route["http_method"],
            type="AWS",
            uri=integration_uri(settings["region"], bucket_name, route),
            credentials=role.arn,
            passthrough_behavior=route["passthrough_behavior"],
            request_templates=route["request_templates"],
            content_handling="CONVERT_TO_BINARY" if route["request_templates"] else None,
            request_parameters=route["request_parameters"],
            opts=pulumi.ResourceOptions(depends_on=[method]))

        responses = []
        for response in response_mapping:
            responses.append(aws.apigateway.IntegrationResponse(f"{route_name}-integration-response-{response['status_code']}",
                rest_api=api.id,
                resource_id=resource.id,
                http_method=method.http_method,
                status_code=response["status_code"],
                selection_pattern=response["selection_pattern"],
                response_parameters=response["response_parameters"],
                response_templates=response.get("response_templates"),
                opts=pulumi.ResourceOptions(depends_on=[integration] + method_responses)))

        methods[route["path"]] = method
        integrations[route["path"]] = integration
        integration_responses[route["path"]] = responses
        deploy_dependencies.extend([method, integration] + responses)

    fingerprint = deployment_fingerprint(settings, routes, response_mapping)

    deployment = aws.apigateway.Deployment(f"{api_name}-api-deployment",
        rest_api=api.id,
        triggers={"redeployment": fingerprint},
        opts=pulumi.ResourceOptions(depends_on=[validator] + deploy_dependencies))

    stage = aws.apigateway.Stage(f"{api_name}-api-stage",
        deployment=deployment.id,
        rest_api=api.id,
        stage_name=settings["stage_name"])

    gateway = {
        "role": role,
        "api": api,
        "request_validator": validator,
        "resources": api_resources,
        "preflights": preflights,
        "methods": methods,
        "integrations": integrations,
        "integration_responses": integration_responses,
        "deployment": deployment,
        "stage": stage,
        "api_key": None,
        "usage_plan": None,
        "usage_plan_key": None
    }

    if rate_limit:
        api_key = aws.apigateway.ApiKey(f"{api_name}-api-key",
            name=f"{api_name}-api-key",
            enabled=True)

        usage_plan = aws.apigateway.UsagePlan(f"{api_name}-usage-plan",
            name=f"{api_name}-usage-plan",
            api_stages=[aws.apigateway.UsagePlanApiStageArgs(
                api_id=api.id,
                stage=stage.stage_name
            )],
            quota_settings=aws.apigateway.UsagePlanQuotaSettingsArgs(**rate_limit["quota_settings"]),
            throttle_settings=aws.apigateway.UsagePlanThrottleSettingsArgs(**rate_limit["throttle_settings"]))

        usage_plan_key = aws.apigateway.UsagePlanKey(f"{api_name}-usage-plan-key",
            key_id=api_key.id,
            key_type="API_KEY",
            usage_plan_id=usage_plan.id)

        gateway["api_key"] = api_key
        gateway["usage_plan"] = usage_plan
        gateway["usage_plan_key"] = usage_plan_key

    return gateway


def pulumi_program(settings=None):
    """Pulumi program: declare the gateway and export its endpoint."""
    settings = settings or get_gateway_settings()
    gateway = build_gateway(settings)

    pulumi.export("api_url", pulumi.Output.concat(
        "https://", gateway["api"].id, ".execute-api.", settings["region"], ".amazonaws.com/", gateway["stage"].stage_name
    ))
    if gateway["api_key"] is not None:
        pulumi.export("api_key_id", gateway["api_key"].id)
