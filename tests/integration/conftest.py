"""Shared fixtures for compgraph integration tests.

Provides a fake cluster seeded with a complete KRO installation (definition,
generated CRD, instance and owned resources) and a Crossplane v2 composite,
plus a service wired to it the way the bootstrap wires production.
"""

from __future__ import annotations

import pytest

from compgraph.resolver.client import ObjectResolver
from compgraph.resolver.paths import build_list_path
from compgraph.resolver.walker import GraphWalker
from compgraph.service import ResourceGraphService
from tests.fakes import FakeCluster, make_object, ready_conditions

RGD_ID = "rgd-1"
INSTANCE_UID = "inst-1"
KRO_SELECTOR = {
    "kro.run/owned": "true",
    "kro.run/instance-id": INSTANCE_UID,
    "kro.run/resource-graph-definition-id": RGD_ID,
}
OWNED_LABELS = dict(KRO_SELECTOR)


def seed_kro(cluster: FakeCluster) -> None:
    """WebApp definition with a Deployment and a Service template plus one external ConfigMap."""
    cluster.add(
        "/apis/kro.run/v1alpha1/resourcegraphdefinitions/webapp",
        make_object(
            "kro.run/v1alpha1",
            "ResourceGraphDefinition",
            "webapp",
            uid=RGD_ID,
            spec={
                "schema": {"apiVersion": "v1alpha1", "group": "kro.run", "kind": "WebApp"},
                "resources": [
                    {"id": "deployment", "template": {"apiVersion": "apps/v1", "kind": "Deployment"}},
                    {"id": "service", "template": {"apiVersion": "v1", "kind": "Service"}},
                    {
                        "id": "shared",
                        "externalRef": {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "shared-cfg"}},
                    },
                ],
            },
        ),
    )
    cluster.add(
        "/apis/apiextensions.k8s.io/v1/customresourcedefinitions/webapps.kro.run",
        make_object(
            "apiextensions.k8s.io/v1",
            "CustomResourceDefinition",
            "webapps.kro.run",
            uid="crd-1",
            spec={
                "group": "kro.run",
                "names": {"kind": "WebApp", "plural": "webapps"},
                "versions": [{"name": "v1alpha1", "served": True, "storage": True}],
            },
        ),
    )
    cluster.add(
        "/apis/kro.run/v1alpha1/namespaces/apps/webapps/my-app",
        make_object(
            "kro.run/v1alpha1",
            "WebApp",
            "my-app",
            namespace="apps",
            uid=INSTANCE_UID,
            status={"conditions": [{"type": "InstanceSynced", "status": "True"}]},
        ),
    )
    cluster.add(
        build_list_path("apps/v1", "deployments", "apps", KRO_SELECTOR),
        {"kind": "DeploymentList", "items": [{"metadata": {"name": "my-app"}}]},
    )
    cluster.add(
        build_list_path("v1", "services", "apps", KRO_SELECTOR),
        {"kind": "ServiceList", "items": [{"metadata": {"name": "my-app-svc"}}]},
    )
    cluster.add(
        "/apis/apps/v1/namespaces/apps/deployments/my-app",
        make_object("apps/v1", "Deployment", "my-app", namespace="apps", uid="dep-1", labels=OWNED_LABELS),
    )
    cluster.add(
        "/api/v1/namespaces/apps/services/my-app-svc",
        make_object("v1", "Service", "my-app-svc", namespace="apps", uid="svc-1", labels=OWNED_LABELS),
    )
    cluster.add(
        "/api/v1/namespaces/apps/configmaps/shared-cfg",
        make_object("v1", "ConfigMap", "shared-cfg", namespace="apps", uid="cm-1"),
    )


def seed_v2_composite(cluster: FakeCluster) -> None:
    """Namespaced v2 composite -> Object wrapper + nested composite -> bucket."""
    app_refs = [
        {"apiVersion": "example.org/v2", "kind": "XNetwork", "name": "net"},
        {"apiVersion": "s3.aws.m.upbound.io/v1beta1", "kind": "Bucket", "name": "assets"},
    ]
    cluster.add(
        "/apis/example.org/v2/namespaces/team-b/xapps/shop",
        make_object(
            "example.org/v2",
            "XApp",
            "shop",
            namespace="team-b",
            uid="u-shop",
            spec={"crossplane": {"resourceRefs": app_refs}},
            status=ready_conditions(),
        ),
    )
    cluster.add(
        "/apis/example.org/v2/namespaces/team-b/xnetworks/net",
        make_object(
            "example.org/v2",
            "XNetwork",
            "net",
            namespace="team-b",
            uid="u-net",
            spec={
                "crossplane": {
                    "resourceRefs": [{"apiVersion": "ec2.aws.m.upbound.io/v1beta1", "kind": "VPC", "name": "vpc"}]
                }
            },
        ),
    )
    cluster.add(
        "/apis/s3.aws.m.upbound.io/v1beta1/namespaces/team-b/buckets/assets",
        make_object("s3.aws.m.upbound.io/v1beta1", "Bucket", "assets", namespace="team-b", uid="u-bucket"),
    )
    cluster.add(
        "/apis/ec2.aws.m.upbound.io/v1beta1/namespaces/team-b/vpcs/vpc",
        make_object(
            "ec2.aws.m.upbound.io/v1beta1",
            "VPC",
            "vpc",
            namespace="team-b",
            uid="u-vpc",
            spec={"crossplane": {"resourceRefs": [{"apiVersion": "v1", "kind": "Secret", "name": "too-deep"}]}},
        ),
    )


@pytest.fixture
def fake_cluster() -> FakeCluster:
    cluster = FakeCluster()
    seed_kro(cluster)
    seed_v2_composite(cluster)
    return cluster


@pytest.fixture
def service(fake_cluster: FakeCluster) -> ResourceGraphService:
    resolver = ObjectResolver(fake_cluster)
    return ResourceGraphService(resolver, GraphWalker(resolver, max_fanout=4), deadline_seconds=5.0)
