"""Reference resolution, classification and graph traversal."""

from compgraph.resolver.classifier import ClassifierHints, classify
from compgraph.resolver.client import KubernetesProxyClient, ObjectResolver, StaticTokenProvider
from compgraph.resolver.paths import Pluralizer, build_list_path, build_path
from compgraph.resolver.profiles import ClaimProfile, CompositeProfile, InstanceProfile
from compgraph.resolver.status import normalize
from compgraph.resolver.walker import GraphWalker

__all__ = [
    "ClaimProfile",
    "ClassifierHints",
    "CompositeProfile",
    "GraphWalker",
    "InstanceProfile",
    "KubernetesProxyClient",
    "ObjectResolver",
    "Pluralizer",
    "StaticTokenProvider",
    "build_list_path",
    "build_path",
    "normalize",
]
