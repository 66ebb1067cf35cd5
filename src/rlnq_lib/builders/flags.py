# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab

"""
Known command-line flags of RELION programs.

The registry is used to flag user-supplied additional arguments that the
program probably does not understand. It is incomplete on purpose: flag sets
differ between RELION versions, so unknown flags are reported but never removed.
"""

import re
from types import MappingProxyType

_FLAG_SYNTAX = re.compile(r"^--?[A-Za-z0-9_][\w-]*$")

_COMMON = ("--pipeline_control", "--only_do_unfinished", "--version")


def _flags(*names: str) -> frozenset[str]:
    return frozenset(names + _COMMON)


RELION_FLAGS = MappingProxyType(
    {
        "relion_import": _flags(
            "--do_movies", "--do_micrographs", "--do_coordinates", "--do_halfmaps",
            "--do_other", "--do_particles", "--i", "--odir", "--ofile",
            "--optics_group_name", "--optics_group_mtf", "--particles_optics_group_name",
            "--angpix", "--kV", "--Cs", "--Q0", "--beamtilt_x", "--beamtilt_y",
            "--node_type", "--do_thumbnails", "--thumbnail_size", "--thumbnail_count",
        ),
        "relion_run_motioncorr": _flags(
            "--i", "--o", "--first_frame_sum", "--last_frame_sum", "--bin_factor",
            "--bfactor", "--dose_per_frame", "--preexposure", "--patch_x", "--patch_y",
            "--eer_grouping", "--gainref", "--gain_rot", "--gain_flip", "--defect_file",
            "--float16", "--dose_weighting", "--save_noDW", "--grouping_for_ps",
            "--j", "--gpu", "--use_own", "--use_motioncor2", "--motioncor2_exe",
            "--angpix", "--voltage", "--Cs", "--do_thumbnails", "--thumbnail_size",
            "--thumbnail_count",
        ),
        "relion_run_ctffind": _flags(
            "--i", "--o", "--ctffind_exe", "--is_ctffind4", "--use_gctf", "--gctf_exe",
            "--ctfWin", "--Box", "--ResMin", "--ResMax", "--dFMin", "--dFMax", "--FStep",
            "--dAst", "--use_given_ps", "--use_noDW", "--fast_search", "--do_phaseshift",
            "--phase_min", "--phase_max", "--phase_step", "--gpu", "--j",
            "--do_thumbnails", "--thumbnail_size", "--thumbnail_count",
        ),
        "relion_autopick": _flags(
            "--i", "--odir", "--pickname", "--shrink", "--lowpass", "--LoG",
            "--LoG_diam_min", "--LoG_diam_max", "--LoG_adjust_threshold",
            "--LoG_upper_threshold", "--LoG_invert", "--topaz_extract", "--topaz_model",
            "--topaz_particle_diameter", "--topaz_train", "--topaz_train_parts",
            "--topaz_train_picks", "--topaz_nr_particles", "--topaz_exe",
            "--extra_topaz_args", "--ref", "--ref3d", "--angpix_ref", "--ang",
            "--invert", "--ctf", "--threshold", "--min_distance", "--max_stddev_noise",
            "--min_avg_noise", "--write_fom_maps", "--read_fom_maps", "--helix",
            "--helical_tube_outer_diameter", "--helical_tube_length_min", "--gpu", "--j",
            "--do_thumbnails", "--thumbnail_size", "--thumbnail_count",
        ),
        "relion_preprocess": _flags(
            "--i", "--part_dir", "--part_star", "--extract", "--extract_size",
            "--coord_dir", "--coord_suffix", "--reextract_data_star", "--reset_offsets",
            "--recenter", "--recenter_x", "--recenter_y", "--recenter_z", "--float16",
            "--invert_contrast", "--norm", "--bg_radius", "--white_dust", "--black_dust",
            "--scale", "--minimum_pick_fom", "--helix", "--helical_outer_diameter",
            "--helical_bimodal_angular_priors", "--helical_tubes",
            "--helical_cut_into_segments", "--helical_nr_asu", "--helical_rise", "--j",
        ),
        "relion_refine": _flags(
            "--o", "--i", "--continue", "--dont_combine_weights_via_disc", "--pool",
            "--j", "--ctf", "--ctf_intact_first_peak", "--iter", "--tau2_fudge",
            "--particle_diameter", "--K", "--flatten_solvent", "--zero_mask",
            "--center_classes", "--oversampling", "--psi_step", "--offset_range",
            "--offset_step", "--norm", "--scale", "--grad", "--class_inactivity_threshold",
            "--grad_write_iter", "--grad_ini_subset", "--strict_highres_exp", "--ref",
            "--trust_ref_size", "--ini_high", "--sym", "--solvent_mask", "--solvent_mask2",
            "--firstiter_cc", "--fast_subsets", "--gpu", "--blush", "--preread_images",
            "--scratch_dir", "--skip_align", "--no_parallel_disc_io", "--auto_refine",
            "--split_random_halves", "--auto_local_healpix_order",
            "--low_resol_join_halves", "--auto_ignore_angles", "--auto_resol_angles",
            "--relax_sym", "--solvent_correct_fsc", "--sigma_tilt", "--sigma_psi",
            "--sigma_rot", "--sigma_ang", "--healpix_order", "--allow_coarser_sampling",
            "--pad", "--helix", "--helical_inner_diameter", "--helical_outer_diameter",
            "--helical_nr_asu", "--helical_twist_initial", "--helical_rise_initial",
            "--helical_z_percentage", "--helical_keep_tilt_prior_fixed",
            "--helical_symmetry_search", "--helical_twist_min", "--helical_twist_max",
            "--helical_twist_inistep", "--helical_rise_min", "--helical_rise_max",
            "--helical_rise_inistep", "--helical_sigma_distance", "--helical_offset_step",
            "--bimodal_psi", "--helical_rise", "--multibody_masks",
            "--reconstruct_subtracted_bodies", "--perturb", "--free_gpu_memory",
            "--skip_gridding", "--onthefly_lowpass", "--do_em", "--write_iter",
            "--subset_size", "--denovo_3dref", "--auto_sampling", "--external_reconstruct",
            "--auto_iter_max",
        ),
        "relion_ctf_refine": _flags(
            "--i", "--o", "--f", "--j", "--fit_aniso", "--kmin_mag", "--fit_defocus",
            "--kmin_defocus", "--fit_mode", "--fit_beamtilt", "--kmin_tilt",
            "--odd_aberr_max_n", "--fit_aberr", "--angpix", "--mask",
        ),
        "relion_motion_refine": _flags(
            "--i", "--o", "--f", "--m1", "--m2", "--a1", "--a2", "--angpix_ref", "--mask",
            "--pad", "--first_frame", "--last_frame", "--verb", "--fdose", "--s_vel",
            "--s_div", "--s_acc", "--params_file", "--only_group", "--diag", "--cc_pad",
            "--dmg_a", "--dmg_b", "--dmg_c", "--max_iters", "--eps", "--no_whiten",
            "--unreg_glob", "--glob_off", "--glob_off_max", "--absolute_params",
            "--params2", "--params3", "--align_frac", "--eval_frac", "--min_p",
            "--par_group", "--s_vel_0", "--s_div_0", "--s_acc_0", "--in_step", "--conv",
            "--par_iters", "--mot_range", "--seed", "--combine_frames", "--float16",
            "--scale", "--window", "--crop", "--ctf_multiply", "--bfac_minfreq",
            "--bfac_maxfreq", "--bfactors", "--diag_bfactor", "--suffix", "--recenter",
            "--recenter_x", "--recenter_y", "--recenter_z", "--j", "--B_parts",
            "--min_MG", "--max_MG", "--sbs", "--corr_mic", "--find_shortest",
            "--eer_upsampling", "--eer_grouping",
        ),
        "relion_postprocess": _flags(
            "--i", "--i2", "--o", "--angpix", "--mask", "--auto_mask",
            "--inimask_threshold", "--extend_inimask", "--width_mask_edge", "--auto_bfac",
            "--autob_lowres", "--autob_highres", "--adhoc_bfac", "--mtf", "--mtf_angpix",
            "--skip_fsc_weighting", "--low_pass", "--locres", "--locres_sampling",
            "--locres_minres", "--locres_maskrad",
        ),
        "relion_mask_create": _flags(
            "--i", "--o", "--ini_threshold", "--extend_inimask", "--width_soft_edge",
            "--angpix", "--lowpass", "--invert", "--fill", "--sphere_radius", "--helix",
            "--z_percentage", "--helical_z_percentage",
        ),
        "relion_star_handler": _flags(
            "--i", "--o", "--combine", "--select", "--minval", "--maxval",
            "--discard_on_stats", "--discard_label", "--discard_sigma", "--split",
            "--random_order", "--nr_split", "--size_split", "--remove_duplicates",
            "--check_duplicates", "--image_angpix", "--compare", "--center", "--regroup",
            "--nr_groups",
        ),
        "relion_class_ranker": _flags(
            "--opt", "--o", "--auto_select", "--min_score", "--min_particles",
            "--min_classes", "--select_min_nr_particles", "--select_min_nr_classes",
            "--fn_sel_parts", "--fn_sel_classavgs", "--fn_root", "--python_exe",
            "--do_granularity_features",
        ),
        "relion_particle_subtract": _flags(
            "--i", "--mask", "--o", "--new_box", "--float16", "--data",
            "--recenter_on_mask", "--center_x", "--center_y", "--center_z", "--revert",
            "--ctf", "--angpix", "--maxres",
        ),
        "relion_manualpick": _flags(
            "--i", "--odir", "--allow_save", "--fast_save", "--selection",
            "--particle_diameter", "--scale", "--sigma_contrast", "--black", "--white",
            "--pick_start_end", "--minimum_pick_fom", "--topaz_denoise", "--color_label",
            "--color_star", "--blue", "--red",
        ),
    }
)


def normalize_program(program: str) -> str:
    """Strip the directory and the MPI suffix from a program name."""
    name = program.rsplit("/", 1)[-1]
    return name.removesuffix("_mpi")


def get_known_flags(program: str) -> frozenset[str] | None:
    """
    Return the known flags of a RELION program.

    Args:
        program (str): Program name, optionally with the `_mpi` suffix.

    Returns:
        frozenset[str] | None: The flags or None if the program is not registered.
    """
    return RELION_FLAGS.get(normalize_program(program))


def is_flag_syntax(token: str) -> bool:
    """Return True if the token is `-` or `--` followed by word characters or hyphens."""
    return _FLAG_SYNTAX.match(token) is not None


def is_known_flag(program: str, flag: str) -> bool:
    """
    Check whether a flag is known for a program.

    Programs that are not registered accept every flag.
    """
    known = get_known_flags(program)
    return known is None or flag in known
