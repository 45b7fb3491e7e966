from ladderfuels.classes import Profile, Gap, Layer, CBHCandidate, Breakpoint, CBHRecord
from ladderfuels.errors import (LadderFuelsError, MalformedProfileError, NoLayersFoundError, ConvergenceError,
                                ChangepointFitError)
from ladderfuels.layers import (prepare_profile, detect_gaps, assemble_layers, link_layers, correct_layers,
                                layer_lad_fractions, filter_layers)
from ladderfuels.changepoint import fit_segmented, estimate_breakpoint
from ladderfuels.cbh import (select_cbh, get_cbh_metrics, max_lad_index, needs_second_layer, max_distance_index,
                             last_index)
from ladderfuels.utils import summarize_cbh, profiles_from_table, load_settings, setup_logging, DEFAULT_SETTINGS
