# Test for cluster risk parity
import numpy as np
import pandas as pd
import pytest

from riskalloc.core.errors import InvalidClusteringError
from riskalloc.core.logger import JsonRunLogger
from riskalloc.optim.cluster_risk_parity import (
    ClusterRiskParityConfig,
    cluster_risk_parity_weights,
    solve_cluster_risk_parity,
)
from riskalloc.optim.risk_budgeting import equal_risk_contribution_weights

SIGMA_BLOCKS = np.array([
    [0.01, 0.016, 0.0, 0.0],
    [0.016, 0.04, 0.0, 0.0],
    [0.0, 0.0, 0.09, -0.06],
    [0.0, 0.0, -0.06, 0.16],
])


@pytest.mark.parametrize("clusters", [[[1, 2, 3, 4]], [[1], [2], [3], [4]]])
def test_degenerate_partitions_give_plain_erc(clusters):
    w = cluster_risk_parity_weights(SIGMA_BLOCKS, ClusterRiskParityConfig(clustering_mode="manual", clusters=clusters))
    assert np.allclose(w, equal_risk_contribution_weights(SIGMA_BLOCKS), atol=1e-10)


def test_two_block_clusters_scale_intra_cluster_erc():
    cfg = ClusterRiskParityConfig(clustering_mode="manual", clusters=[[1, 2], [3, 4]])
    w = cluster_risk_parity_weights(SIGMA_BLOCKS, cfg)
    w_c1 = equal_risk_contribution_weights(SIGMA_BLOCKS[:2, :2])
    w_c2 = equal_risk_contribution_weights(SIGMA_BLOCKS[2:, 2:])
    p = w[0] / w_c1[0]
    q = w[2] / w_c2[0]
    assert abs(w[1] / w_c1[1] - p) < 1e-8
    assert abs(w[3] / w_c2[1] - q) < 1e-8
    assert abs(p + q - 1.0) < 1e-12


def test_ftca_default_reference_weights():
    lg = JsonRunLogger(log_dir=None)
    res = solve_cluster_risk_parity(SIGMA_BLOCKS, ClusterRiskParityConfig(eps=1e-12), run_logger=lg)
    assert res.clusters == [[1, 2], [3], [4]]
    assert np.allclose(
        res.weights,
        [0.3262379197337176, 0.16311896054014643, 0.29179607083498427, 0.21884704889115175],
        atol=1e-8,
    )
    assert abs(res.cluster_weights.sum() - 1.0) < 1e-12
    assert res.embedding.shape == (4, 3)
    assert [r["event"] for r in lg.records] == ["ftca_clusters", "crp_solve"]


def test_clusters_have_equal_risk():
    cfg = ClusterRiskParityConfig(clustering_mode="manual", clusters=[[1, 2], [3, 4]], eps=1e-12)
    res = solve_cluster_risk_parity(SIGMA_BLOCKS, cfg)
    C = res.embedding.T @ SIGMA_BLOCKS @ res.embedding
    c = res.cluster_weights
    rc = c * (C @ c)
    assert np.allclose(rc / rc.sum(), [0.5, 0.5], atol=1e-8)


@pytest.mark.parametrize(
    "mode, clusters, message",
    [
        ("none", None, "unsupported clustering method"),
        ("manual", None, "missing asset index: 1"),
        ("manual", [[1, 2, 3, 4], []], "empty cluster at index: 1"),
        ("manual", [[0, 1, 2, 3]], "asset index out of bounds: 0"),
        ("manual", [[1, 2, 3, 5]], "asset index out of bounds: 5"),
        ("manual", [[1, 2, 3]], "missing asset index: 4"),
        ("manual", [[1, 1, 2, 3]], "duplicate asset index: 1"),
    ],
)
def test_invalid_clustering(mode, clusters, message):
    cfg = ClusterRiskParityConfig(clustering_mode=mode, clusters=clusters)
    with pytest.raises(InvalidClusteringError, match=message):
        cluster_risk_parity_weights(SIGMA_BLOCKS, cfg)


def test_labelled_input_returns_series():
    df = pd.DataFrame(SIGMA_BLOCKS, columns=["EQ1", "EQ2", "BD1", "BD2"], index=["EQ1", "EQ2", "BD1", "BD2"])
    w = cluster_risk_parity_weights(df)
    assert isinstance(w, pd.Series)
    assert list(w.index) == ["EQ1", "EQ2", "BD1", "BD2"]
    assert abs(float(w.sum()) - 1.0) < 1e-12
