"""Pipeline orchestration.

- dag: explicit dependency graph with memoised nodes, evaluated in
  topological order on a thread pool
- suhi_pipeline: wires region, reference geometry, LST, zonal and S-UHI
  stages into a graph and runs it for one AOI
"""
