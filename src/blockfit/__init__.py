from .graph_data import GraphData, gd_from_edges, gd_from_networkx
from .blockmodel import UndirectedBlockmodel
from .greedy import GreedyStrategy
from .mcmc import MetropolisHastingsStrategy
from .convergence import ConvergenceCriterion, EntropyConvergenceCriterion, CONVERGENCE_CRITERIA
from .model_selection import ModelSelection, candidate_group_counts
from .io import GraphLoader, ModelWriter, BlockmodelFit, read_json_fit
from .fitter import BlockmodelFitter

__version__ = "0.1.0"
