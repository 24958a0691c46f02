"""Plugin manifest model - describes a plugin's identity, route prefix and resources."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ManifestModel(BaseModel):
    """Base for manifest structures: immutable, wire aliases accepted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class MethodRequirement(_ManifestModel):
    """Required/administrative flags of a parameter for one HTTP method."""

    method: str
    is_required: bool = Field(default=False, alias="isRequired")
    administrative: bool = False

    @field_validator("method")
    @classmethod
    def method_upper(cls, v: str) -> str:
        return v.upper()


class ParameterDefinition(_ManifestModel):
    """Describes one domain parameter a resource understands.

    Definitions are descriptive only: the gateway never validates
    request values against them, that stays a plugin concern.
    """

    parameter: str = Field(..., description="Parameter name")
    type: str = Field(default="string", description="Declared value type")
    description: str = ""
    operators: List[str] = Field(default_factory=lambda: ["="])
    examples: List[Any] = Field(default_factory=list)
    wildcard: bool = False
    required: List[MethodRequirement] = Field(default_factory=list)

    def methods(self) -> List[str]:
        """HTTP methods this parameter declares flags for."""
        return [r.method for r in self.required]

    def _requirement(self, method: str) -> Optional[MethodRequirement]:
        method = method.upper()
        return next((r for r in self.required if r.method == method), None)

    def is_required(self, method: str) -> bool:
        requirement = self._requirement(method)
        return requirement.is_required if requirement else False

    def is_administrative(self, method: str) -> bool:
        requirement = self._requirement(method)
        return requirement.administrative if requirement else False


class HttpMethodBinding(_ManifestModel):
    """Binds one HTTP verb to a function of the resource implementation."""

    http_method: str = Field(..., alias="httpMethod")
    function: str

    @field_validator("http_method")
    @classmethod
    def verb_upper(cls, v: str) -> str:
        return v.upper()


class Resource(_ManifestModel):
    """A versioned, routed unit within a manifest."""

    version: Union[int, str]
    route: str
    implementation: str = Field(
        ...,
        description="Module file under the plugin's api/ folder, optionally 'module:ClassName'",
    )
    description: str = ""
    http_methods: List[HttpMethodBinding] = Field(default_factory=list, alias="httpMethods")
    parameters: List[ParameterDefinition] = Field(default_factory=list)

    @field_validator("http_methods")
    @classmethod
    def one_function_per_verb(cls, v: List[HttpMethodBinding]) -> List[HttpMethodBinding]:
        verbs = [binding.http_method for binding in v]
        duplicates = sorted({verb for verb in verbs if verbs.count(verb) > 1})
        if duplicates:
            raise ValueError(f"HTTP method bound more than once: {', '.join(duplicates)}")
        return v

    @property
    def path_segment(self) -> str:
        """The 'v<version>/<route>/' piece this resource contributes to its URI."""
        return f"v{self.version}/{self.route}/"

    def binding_for(self, method: str) -> Optional[HttpMethodBinding]:
        method = method.upper()
        return next((b for b in self.http_methods if b.http_method == method), None)


class Informational(_ManifestModel):
    plugin: str = Field(..., description="Unique plugin identifier")
    name: str = "Unknown"
    description: str = "Unknown"
    required: bool = False


class RouteOption(_ManifestModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    enable: bool = False


class CorsPolicy(_ManifestModel):
    enable: bool = False
    whitelist: str = "*"


class RouteConfig(_ManifestModel):
    uri: str
    options: Dict[str, RouteOption] = Field(default_factory=dict)
    cors: Optional[CorsPolicy] = None


class PluginManifest(_ManifestModel):
    """Plugin manifest loaded from manifest.json."""

    informational: Informational
    route: RouteConfig
    resources: List[Resource] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.informational.plugin

    @property
    def name(self) -> str:
        return self.informational.name

    @property
    def description(self) -> str:
        return self.informational.description

    @property
    def cors_enabled(self) -> bool:
        return bool(self.route.cors and self.route.cors.enable)

    def enabled_options(self) -> List[Dict[str, Any]]:
        """Route options switched on, as ``{header, value}`` pairs."""
        return [
            {"header": name, "value": option.enable}
            for name, option in self.route.options.items()
            if option.enable
        ]

    def resource_for(self, service_name: str) -> Optional[Resource]:
        """Find the resource whose route segment equals ``service_name`` (last match wins)."""
        match = None
        for resource in self.resources:
            if resource.route == service_name:
                match = resource
        return match

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the wire spelling."""
        return self.model_dump(by_alias=True)
