"""pooldetect: Monte Carlo detection power for rare alleles in pooled sequencing.

Estimates the probability of observing at least one read of a rare
(resistant) allele when a fixed number of homozygous carriers is diluted
into pools of varying size and sequenced at varying depth:
  - Parameter grid over (coverage, pool size) with implied allele frequency
  - Binomial read-sampling trials, folded into per-cell fail/success counts
  - False-negative rate curve against coverage per individual
  - Validation against a published individual-vs-pool sequencing dataset

Model assumptions: diploid individuals, uniform coverage, no sequencing
error and no capture bias.
"""

__version__ = "0.1.0"
