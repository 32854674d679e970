#   Copyright 2024 The ascr Developers
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
"""Log-linear models for animal density over the mask."""
import numpy as np
import pandas as pd
import patsy

from ascr.exceptions import ConfigurationError
from ascr.params import DENSITY_INTERCEPT

__all__ = ["DensityDesign"]


def _coef_name(column):
    if column == "Intercept":
        return DENSITY_INTERCEPT
    return f"D.{column}"


class DensityDesign:
    """Design matrices for ``log(D) = X beta`` at each session's mask points.

    Parameters
    ----------
    masks: list of Mask
    formula: str, optional
        Patsy right-hand-side formula, e.g. ``"~ elevation"``. Columns ``x``
        and ``y`` (mask coordinates) are always available. If omitted,
        density is constant.
    mask_covariates: list of DataFrame, optional
        One frame per session, one row per mask point.
    scale_covs: bool
        Whether numeric covariates are centred and scaled before the design
        matrix is built. The same scaling is applied to prediction data.
    """

    def __init__(self, masks, formula=None, mask_covariates=None, scale_covs=True):
        self.formula = formula
        self.scale_covs = scale_covs
        self.covariates = formula is not None
        if not self.covariates:
            if mask_covariates is not None:
                raise ConfigurationError(
                    "Argument 'mask_covariates' requires a 'density_formula'."
                )
            self.design_info = None
            self.means, self.sds = {}, {}
            self.param_names = [DENSITY_INTERCEPT]
            self.matrices = [np.ones((len(mask), 1)) for mask in masks]
            return

        if mask_covariates is None:
            mask_covariates = [None] * len(masks)
        if isinstance(mask_covariates, pd.DataFrame):
            mask_covariates = [mask_covariates]
        if len(mask_covariates) != len(masks):
            raise ConfigurationError("Argument 'mask_covariates' must have one frame per session.")
        frames = []
        for mask, covs in zip(masks, mask_covariates):
            frame = pd.DataFrame({"x": mask.points[:, 0], "y": mask.points[:, 1]})
            if covs is not None:
                covs = pd.DataFrame(covs).reset_index(drop=True)
                if len(covs) != len(mask):
                    raise ConfigurationError(
                        "Each frame of 'mask_covariates' must have one row per mask point."
                    )
                frame = pd.concat([frame, covs.drop(columns=["x", "y"], errors="ignore")], axis=1)
            frames.append(frame)

        pooled = pd.concat(frames, ignore_index=True)
        numeric = pooled.select_dtypes(include="number")
        if scale_covs:
            self.means = numeric.mean().to_dict()
            self.sds = numeric.std().replace(0, 1).to_dict()
        else:
            self.means, self.sds = {}, {}
        try:
            pooled_design = patsy.dmatrix(formula, self.scale(pooled), return_type="dataframe")
        except patsy.PatsyError as e:
            raise ConfigurationError(f"Invalid 'density_formula': {e}") from e
        if len(pooled_design) != len(pooled):
            raise ConfigurationError("Mask covariates must not contain missing values.")
        self.design_info = pooled_design.design_info
        self.param_names = [_coef_name(c) for c in pooled_design.columns]
        bounds = np.cumsum([0] + [len(f) for f in frames])
        values = pooled_design.to_numpy()
        self.matrices = [values[lo:hi] for lo, hi in zip(bounds[:-1], bounds[1:])]

    def scale(self, data):
        data = data.copy()
        for column, mean in self.means.items():
            if column in data:
                data[column] = (data[column] - mean) / self.sds[column]
        return data

    def model_matrix(self, newdata):
        """Design matrix for new covariate values, scaled as at fit time."""
        if not self.covariates:
            return np.ones((len(newdata), 1))
        newdata = self.scale(pd.DataFrame(newdata))
        try:
            (mm,) = patsy.build_design_matrices(
                [self.design_info], newdata, NA_action="raise", return_type="dataframe"
            )
        except patsy.PatsyError as e:
            raise ConfigurationError(f"Invalid 'newdata': {e}") from e
        return mm.to_numpy()
