"""
Analytics Package
=================
Numerical building blocks over numpy arrays. No I/O, no global state.

Modules:
  linalg         - matrix/vector kernel, Gauss-Jordan inverse, power-iteration eigen
  clustering     - KMeans, DBSCAN, silhouette score, elbow search
  regression     - linear, polynomial and logistic regression
  patterns       - pattern library, anomaly detector, trend analyzer
  neural_network - multi-layer perceptron with snapshot save/load
  multivariate   - PCA, factor analysis, CCA, MANOVA, LDA, F CDF
  outliers       - univariate outlier battery
  forecasting    - moving averages, linear and Holt-Winters forecasts
  hypothesis     - t, chi-square, ANOVA, Mann-Whitney and KS tests via scipy.stats
"""
